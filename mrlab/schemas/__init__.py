"""JSON Schemas bundled with mrlab."""
