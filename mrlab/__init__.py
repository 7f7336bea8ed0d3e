"""Top-level package exports for the mrlab condition sequencing toolkit."""

from .core.session import ExperimentSession
from .core.config import ExperimentConfig, SequenceOption
from .orchestration.pipeline import apply_sequence, plan_for

__all__ = [
    "ExperimentConfig",
    "ExperimentSession",
    "SequenceOption",
    "apply_sequence",
    "plan_for",
]
