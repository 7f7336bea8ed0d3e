"""Structured record schema for event and frame logs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

Vector3 = Tuple[float, float, float]

BASE_HEADER: Tuple[str, ...] = (
    "TimeStamp",
    "ExperimentName",
    "SubjectID",
    "Gender",
    "Age",
    "Recruitment",
    "ConditionName",
    "ConditionSequence",
    "ConditionTime",
    "ExperimentTime",
)
EVENT_HEADER: Tuple[str, ...] = BASE_HEADER + ("Source", "Target")
FRAME_HEADER: Tuple[str, ...] = BASE_HEADER + (
    "SourceX",
    "SourceY",
    "SourceZ",
    "TargetX",
    "TargetY",
    "TargetZ",
)

NULL_VALUE = "NULL"


def format_value(value: Any) -> str:
    """Render a value with invariant (dot-decimal) formatting."""

    if value is None:
        return NULL_VALUE
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


@dataclass(slots=True)
class EventRecord:
    """One logged interaction between a source and a target during a condition."""

    timestamp: datetime
    experiment_name: str
    subject_id: int
    gender: str
    age: int
    recruitment: str
    condition_name: str
    condition_sequence: int
    condition_time: float
    experiment_time: float
    source: str
    target: str
    extras: Dict[str, Any] = field(default_factory=dict)

    def _prefix(self) -> List[Any]:
        return [
            self.timestamp,
            self.experiment_name,
            self.subject_id,
            self.gender,
            self.age,
            self.recruitment,
            self.condition_name,
            self.condition_sequence,
            self.condition_time,
            self.experiment_time,
        ]

    def row(self, extra_headers: Sequence[str] = ()) -> List[str]:
        values = self._prefix() + [self.source, self.target]
        values.extend(self.extras.get(header) for header in extra_headers)
        return [format_value(v) for v in values]

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-compatible mapping used for schema validation."""

        return {
            "timestamp": self.timestamp.isoformat(),
            "experiment_name": self.experiment_name,
            "subject_id": self.subject_id,
            "gender": self.gender,
            "age": self.age,
            "recruitment": self.recruitment,
            "condition_name": self.condition_name,
            "condition_sequence": self.condition_sequence,
            "condition_time": self.condition_time,
            "experiment_time": self.experiment_time,
            "source": self.source,
            "target": self.target,
            "extras": {k: format_value(v) for k, v in self.extras.items()},
        }


@dataclass(slots=True)
class FrameRecord:
    """Per-frame positional sample of a source and target."""

    timestamp: datetime
    experiment_name: str
    subject_id: int
    gender: str
    age: int
    recruitment: str
    condition_name: str
    condition_sequence: int
    condition_time: float
    experiment_time: float
    source_position: Vector3
    target_position: Vector3
    extras: Dict[str, Any] = field(default_factory=dict)

    def row(self, extra_headers: Sequence[str] = ()) -> List[str]:
        values: List[Any] = [
            self.timestamp,
            self.experiment_name,
            self.subject_id,
            self.gender,
            self.age,
            self.recruitment,
            self.condition_name,
            self.condition_sequence,
            self.condition_time,
            self.experiment_time,
        ]
        values.extend(float(c) for c in self.source_position)
        values.extend(float(c) for c in self.target_position)
        values.extend(self.extras.get(header) for header in extra_headers)
        return [format_value(v) for v in values]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "experiment_name": self.experiment_name,
            "subject_id": self.subject_id,
            "gender": self.gender,
            "age": self.age,
            "recruitment": self.recruitment,
            "condition_name": self.condition_name,
            "condition_sequence": self.condition_sequence,
            "condition_time": self.condition_time,
            "experiment_time": self.experiment_time,
            "source_position": [float(c) for c in self.source_position],
            "target_position": [float(c) for c in self.target_position],
            "extras": {k: format_value(v) for k, v in self.extras.items()},
        }
