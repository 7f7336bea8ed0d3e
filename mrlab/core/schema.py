"""JSON Schema checks for event and frame log rows."""
from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

EVENT_SCHEMA = "event_record.schema.json"
FRAME_SCHEMA = "frame_record.schema.json"


@lru_cache(maxsize=None)
def _validator(name: str) -> Draft202012Validator:
    text = resources.files("mrlab.schemas").joinpath(name).read_text(encoding="utf-8")
    schema = json.loads(text)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def schema_errors(record: Dict[str, Any], name: str = EVENT_SCHEMA) -> List[str]:
    """Return readable messages for every violation, sorted by field path."""

    errors = sorted(_validator(name).iter_errors(record), key=lambda e: [str(p) for p in e.absolute_path])
    return [f"{'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}" for err in errors]


def validate_event_record(record: Dict[str, Any]) -> None:
    _validator(EVENT_SCHEMA).validate(record)


def validate_frame_record(record: Dict[str, Any]) -> None:
    _validator(FRAME_SCHEMA).validate(record)
