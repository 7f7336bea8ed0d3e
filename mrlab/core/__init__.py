from .config import (
    COLUMN_ACCESSORS,
    Demographics,
    ExperimentConfig,
    Gender,
    LogColumn,
    LoggingOptions,
    Recruitment,
    SequenceOption,
    StudyTiming,
    condition_name,
    load_experiment_config,
)
from .events import EVENT_HEADER, FRAME_HEADER, EventRecord, FrameRecord
from .io import AssignmentEntry, AssignmentManifest, compute_sequence_hash, read_jsonl
from .logging import EventLogWriter, FrameLogWriter, configure_logging
from .session import ExperimentSession, HeadlessDisplay, RunState

__all__ = [
    "AssignmentEntry",
    "AssignmentManifest",
    "COLUMN_ACCESSORS",
    "Demographics",
    "EVENT_HEADER",
    "EventLogWriter",
    "EventRecord",
    "ExperimentConfig",
    "ExperimentSession",
    "FRAME_HEADER",
    "FrameLogWriter",
    "FrameRecord",
    "Gender",
    "HeadlessDisplay",
    "LogColumn",
    "LoggingOptions",
    "Recruitment",
    "RunState",
    "SequenceOption",
    "StudyTiming",
    "compute_sequence_hash",
    "condition_name",
    "configure_logging",
    "load_experiment_config",
    "read_jsonl",
]
