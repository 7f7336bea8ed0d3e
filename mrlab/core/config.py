"""Configuration primitives for counterbalanced experiment runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

import yaml

if TYPE_CHECKING:  # pragma: no cover
    from .session import ExperimentSession


class SequenceOption(str, Enum):
    """Counterbalancing strategy applied once per run."""

    BALANCED_LATIN_SQUARE = "balanced_latin_square"
    LATIN_SQUARE = "latin_square"
    PERMUTATIONS = "permutations"
    SHUFFLE_BY_SEED = "shuffle_by_seed"
    SHUFFLE = "shuffle"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    NOT_SPECIFIED = "not_specified"


class Recruitment(str, Enum):
    STUDENT = "student"
    STAFF = "staff"
    FAMILY_AND_FRIENDS = "family_and_friends"
    INVITED_EXTERNAL = "invited_external"
    OTHER = "other"


def condition_name(item: Any) -> str:
    """Return the display name of a condition (``item.name`` when present)."""

    name = getattr(item, "name", None)
    return str(name) if name is not None else str(item)


ColumnAccessor = Callable[["ExperimentSession"], object]


@dataclass(slots=True)
class LogColumn:
    """Extra named column appended to every event or frame log row.

    ``accessor`` receives the running session and returns the value to log;
    columns without an accessor are written as ``NULL``.
    """

    header: str
    accessor: Optional[ColumnAccessor] = None


@dataclass(slots=True)
class Demographics:
    """Participant details entered before a run."""

    subject_id: int
    age: int = 0
    gender: Gender = Gender.NOT_SPECIFIED
    recruitment: Recruitment = Recruitment.OTHER


@dataclass(slots=True)
class StudyTiming:
    """Instruction text and timers for the countdown and each condition."""

    instruction_text: str = ""
    countdown_text: str = "Starting in"
    countdown_seconds: float = 3.0
    use_condition_timer: bool = True
    condition_seconds: float = 10.0


@dataclass(slots=True)
class LoggingOptions:
    """Where and what the run writes to disk."""

    log_dir: Path = Path("Results/Logs")
    questionnaire_dir: Path = Path("Results/Questionnaires")
    save_event_log: bool = True
    save_frame_log: bool = True
    event_columns: Sequence[LogColumn] = field(default_factory=tuple)
    frame_columns: Sequence[LogColumn] = field(default_factory=tuple)
    manifest_path: Optional[Path] = None


@dataclass(slots=True)
class ExperimentConfig:
    """Complete configuration bundle for a single experiment run."""

    experiment_name: str
    conditions: Sequence[Any]
    demographics: Demographics
    sequence: SequenceOption = SequenceOption.BALANCED_LATIN_SQUARE
    timing: StudyTiming = field(default_factory=StudyTiming)
    logging: LoggingOptions = field(default_factory=LoggingOptions)
    max_permutation_items: int = 8
    notes: Optional[str] = None

    @property
    def participant(self) -> int:
        """Index used to select the participant's ordering."""

        return self.demographics.subject_id


def _state_accessors() -> Dict[str, ColumnAccessor]:
    return {
        "subject_id": lambda session: session.config.demographics.subject_id,
        "condition_name": lambda session: session.current_condition_name,
        "condition_index": lambda session: session.current_condition,
        "condition_time": lambda session: session.state.condition_time,
        "experiment_time": lambda session: session.state.experiment_time,
        "questionnaire_index": lambda session: session.state.questionnaire_index,
        "condition_count": lambda session: len(session.conditions),
    }


COLUMN_ACCESSORS: Dict[str, ColumnAccessor] = _state_accessors()


def resolve_columns(entries: Sequence[Mapping[str, Any]], path: Optional[Path] = None) -> List[LogColumn]:
    """Turn ``{header, accessor}`` mappings into LogColumn objects."""

    columns: List[LogColumn] = []
    for entry in entries:
        if "header" not in entry:
            raise ValueError(f"{path}: extra log columns need a 'header'")
        name = entry.get("accessor")
        accessor = None
        if name is not None:
            accessor = COLUMN_ACCESSORS.get(str(name))
            if accessor is None:
                raise KeyError(f"Unknown log column accessor: {name}")
        columns.append(LogColumn(header=str(entry["header"]), accessor=accessor))
    return columns


_REQUIRED_KEYS = ("experiment_name", "conditions", "subject_id")


def load_experiment_config(path: Path) -> ExperimentConfig:
    """Read and validate an experiment YAML file."""

    path = Path(path)
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    missing = [key for key in _REQUIRED_KEYS if key not in data]
    if missing:
        raise ValueError(f"{path}: missing required keys {missing}")
    conditions = data["conditions"]
    if not isinstance(conditions, list) or not conditions:
        raise ValueError(f"{path}: 'conditions' must be a non-empty list")
    subject_id = int(data["subject_id"])
    if subject_id < 0:
        raise ValueError(f"{path}: 'subject_id' must be non-negative")
    try:
        demographics = Demographics(
            subject_id=subject_id,
            age=int(data.get("age", 0)),
            gender=Gender(data.get("gender", Gender.NOT_SPECIFIED.value)),
            recruitment=Recruitment(data.get("recruitment", Recruitment.OTHER.value)),
        )
        sequence = SequenceOption(data.get("sequence", SequenceOption.BALANCED_LATIN_SQUARE.value))
    except ValueError as exc:
        raise ValueError(f"{path}: {exc}") from exc

    timing_cfg = data.get("timing", {}) or {}
    timing = StudyTiming(
        instruction_text=str(timing_cfg.get("instruction_text", "")),
        countdown_text=str(timing_cfg.get("countdown_text", "Starting in")),
        countdown_seconds=float(timing_cfg.get("countdown_seconds", 3.0)),
        use_condition_timer=bool(timing_cfg.get("use_condition_timer", True)),
        condition_seconds=float(timing_cfg.get("condition_seconds", 10.0)),
    )

    log_cfg = data.get("logging", {}) or {}
    manifest = log_cfg.get("manifest_path")
    logging = LoggingOptions(
        log_dir=Path(log_cfg.get("log_dir", "Results/Logs")),
        questionnaire_dir=Path(log_cfg.get("questionnaire_dir", "Results/Questionnaires")),
        save_event_log=bool(log_cfg.get("save_event_log", True)),
        save_frame_log=bool(log_cfg.get("save_frame_log", True)),
        event_columns=resolve_columns(log_cfg.get("event_columns", []) or [], path),
        frame_columns=resolve_columns(log_cfg.get("frame_columns", []) or [], path),
        manifest_path=Path(manifest) if manifest else None,
    )

    return ExperimentConfig(
        experiment_name=str(data["experiment_name"]),
        conditions=[str(c) for c in conditions],
        demographics=demographics,
        sequence=sequence,
        timing=timing,
        logging=logging,
        max_permutation_items=int(data.get("max_permutation_items", 8)),
        notes=data.get("notes"),
    )
