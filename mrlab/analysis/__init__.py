from .balance import (
    carryover_counts,
    design_matrix,
    is_position_balanced,
    max_carryover,
    position_counts,
)

__all__ = [
    "carryover_counts",
    "design_matrix",
    "is_position_balanced",
    "max_carryover",
    "position_counts",
]
