"""Shared helpers for unit tests."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Sequence, Tuple

from mrlab.core.config import (
    Demographics,
    ExperimentConfig,
    Gender,
    LogColumn,
    LoggingOptions,
    Recruitment,
    SequenceOption,
    StudyTiming,
)
from mrlab.core.session import ExperimentSession, HeadlessDisplay

CONDITIONS = ["A", "B", "C", "D"]


@dataclass
class FakeQuestionnaires:
    """Questionnaire gate that records which questionnaires were shown."""

    count: int = 2
    started: List[Tuple[int, Any]] = field(default_factory=list)
    hidden: List[int] = field(default_factory=list)
    resets: int = 0

    def start(self, index: int, save_dir: Any) -> None:
        self.started.append((index, save_dir))

    def hide(self, index: int) -> None:
        self.hidden.append(index)

    def reset_all(self) -> None:
        self.resets += 1


def make_config(
    log_dir: Path,
    *,
    conditions: Sequence[Any] = tuple(CONDITIONS),
    subject_id: int = 0,
    sequence: SequenceOption = SequenceOption.BALANCED_LATIN_SQUARE,
    event_columns: Sequence[LogColumn] = (),
    frame_columns: Sequence[LogColumn] = (),
    manifest_path: Path | None = None,
    countdown_seconds: float = 3.0,
    condition_seconds: float = 2.0,
    use_condition_timer: bool = True,
) -> ExperimentConfig:
    return ExperimentConfig(
        experiment_name="unit",
        conditions=list(conditions),
        demographics=Demographics(
            subject_id=subject_id,
            age=27,
            gender=Gender.FEMALE,
            recruitment=Recruitment.STUDENT,
        ),
        sequence=sequence,
        timing=StudyTiming(
            instruction_text="Welcome",
            countdown_text="Starting in",
            countdown_seconds=countdown_seconds,
            use_condition_timer=use_condition_timer,
            condition_seconds=condition_seconds,
        ),
        logging=LoggingOptions(
            log_dir=log_dir,
            questionnaire_dir=log_dir / "questionnaires",
            event_columns=tuple(event_columns),
            frame_columns=tuple(frame_columns),
            manifest_path=manifest_path,
        ),
    )


def make_session(log_dir: Path, questionnaires: Any = None, **kwargs: Any) -> ExperimentSession:
    config = make_config(log_dir, **kwargs)
    return ExperimentSession(config=config, display=HeadlessDisplay(), questionnaires=questionnaires)


def run_countdown(session: ExperimentSession, dt: float = 1.0) -> None:
    session.start_countdown()
    while session.state.countdown_running:
        session.tick(dt)
