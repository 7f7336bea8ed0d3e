from .pipeline import SequencePlan, apply_sequence, is_reproducible, plan_for, plan_range
from .sequencing import (
    InfeasiblePermutations,
    InvalidConditionList,
    InvalidParticipant,
    SequencingError,
    balanced_latin_square,
    latin_square,
    permutation_rows,
    permutations,
    shuffle,
    shuffle_by_seed,
)

__all__ = [
    "InfeasiblePermutations",
    "InvalidConditionList",
    "InvalidParticipant",
    "SequencePlan",
    "SequencingError",
    "apply_sequence",
    "balanced_latin_square",
    "is_reproducible",
    "latin_square",
    "permutation_rows",
    "permutations",
    "plan_for",
    "plan_range",
    "shuffle",
    "shuffle_by_seed",
]
