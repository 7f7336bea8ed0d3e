"""Run controller that advances a participant through the ordered conditions."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from loguru import logger

from mrlab.orchestration.pipeline import SequencePlan, plan_for

from .config import ExperimentConfig, condition_name
from .events import EventRecord, FrameRecord, Vector3
from .io import AssignmentManifest
from .logging import EventLogWriter, FrameLogWriter


class Display(Protocol):
    """Presentation layer the session drives (instructions, countdown, scenes)."""

    def show_text(self, text: str) -> None: ...

    def hide_text(self) -> None: ...

    def set_active(self, condition: Any, active: bool) -> None: ...


class QuestionnaireGate(Protocol):
    """Questionnaires shown between conditions; the run waits for completion."""

    count: int

    def start(self, index: int, save_dir: Any) -> None: ...

    def hide(self, index: int) -> None: ...

    def reset_all(self) -> None: ...


@dataclass
class HeadlessDisplay:
    """Display that records what would have been shown (tests, dry runs)."""

    texts: List[str] = field(default_factory=list)
    text_visible: bool = False
    active: Dict[str, bool] = field(default_factory=dict)

    def show_text(self, text: str) -> None:
        self.texts.append(text)
        self.text_visible = True

    def hide_text(self) -> None:
        self.text_visible = False

    def set_active(self, condition: Any, active: bool) -> None:
        self.active[condition_name(condition)] = active

    @property
    def active_conditions(self) -> List[str]:
        return [name for name, on in self.active.items() if on]


@dataclass
class RunState:
    """Mutable per-run fields owned by the session."""

    cursor: int = 0
    condition_name: str = ""
    condition_time: float = 0.0
    experiment_time: float = 0.0
    countdown_remaining: float = 0.0
    countdown_running: bool = False
    trial_running: bool = False
    experiment_running: bool = False
    awaiting_questionnaire: bool = False
    questionnaire_index: int = 0
    finished: bool = False


@dataclass
class ExperimentSession:
    """Coordinates sequencing, timing, questionnaires and logging for one run."""

    config: ExperimentConfig
    display: Display = field(default_factory=HeadlessDisplay)
    questionnaires: Optional[QuestionnaireGate] = None
    state: RunState = field(default_factory=RunState, init=False)
    _conditions: List[Any] = field(default_factory=list, init=False, repr=False)
    _event_log: Optional[EventLogWriter] = field(default=None, init=False, repr=False)
    _frame_log: Optional[FrameLogWriter] = field(default=None, init=False, repr=False)
    _started: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self._conditions = list(self.config.conditions)

    # --- Lifecycle ---
    def start(self, **sequence_kwargs: Any) -> SequencePlan:
        """Order the conditions, open the logs and show the instructions.

        The ordering is computed before any file is opened, so a sequencing
        error leaves nothing behind on disk. If a log file or the manifest
        cannot be written, any writer already opened is closed again and the
        session stays unstarted.
        """

        if self._started:
            raise RuntimeError("Session already started.")
        self.hide_conditions()
        plan = plan_for(self.config, **sequence_kwargs)

        opts = self.config.logging
        try:
            if opts.save_event_log:
                self._event_log = EventLogWriter(opts.log_dir, [c.header for c in opts.event_columns])
            if opts.save_frame_log:
                self._frame_log = FrameLogWriter(opts.log_dir, [c.header for c in opts.frame_columns])
            if opts.manifest_path is not None:
                self._record_assignment(plan, opts.manifest_path)
        except Exception as exc:
            logger.error("Could not open the run logs for subject {}: {}", self.config.participant, exc)
            self.stop()
            raise

        self._conditions = list(plan.order)
        self._started = True
        self.state.countdown_remaining = self.config.timing.countdown_seconds
        self.display.show_text(self.config.timing.instruction_text)
        return plan

    def _record_assignment(self, plan: SequencePlan, path: Path) -> None:
        started = datetime.now(timezone.utc)
        entry = plan.to_entry(
            run_id=f"{self.config.experiment_name}-{self.config.participant}-{started:%Y%m%dT%H%M%S%f}",
            experiment_name=self.config.experiment_name,
        )
        entry.started_at = started
        manifest = AssignmentManifest(path)
        previous = manifest.orders_for(self.config.participant)
        if previous and previous[-1] != plan.names:
            logger.warning(
                "Subject {} previously received {}; now assigned {}",
                self.config.participant,
                previous[-1],
                plan.names,
            )
        manifest.append(entry)

    def stop(self) -> None:
        """Close the log files; safe to call more than once."""

        for writer in (self._event_log, self._frame_log):
            if writer is not None:
                writer.close()

    def __enter__(self) -> "ExperimentSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # --- Accessors ---
    @property
    def conditions(self) -> List[Any]:
        return list(self._conditions)

    @property
    def current_condition(self) -> int:
        return self.state.cursor

    @property
    def current_condition_name(self) -> str:
        return self.state.condition_name

    @property
    def event_log(self) -> Optional[EventLogWriter]:
        return self._event_log

    @property
    def frame_log(self) -> Optional[FrameLogWriter]:
        return self._frame_log

    # --- Timing ---
    def start_countdown(self) -> None:
        self._require_started()
        if not self.state.experiment_running and not self.state.countdown_running:
            self.state.countdown_running = True

    def tick(self, dt: float) -> None:
        """Advance the run clock by ``dt`` seconds."""

        state = self.state
        if not self._started or state.finished:
            return
        timing = self.config.timing
        if state.experiment_running:
            state.experiment_time += dt
            if state.trial_running:
                state.condition_time += dt
                if timing.use_condition_timer and state.condition_time > timing.condition_seconds:
                    logger.info("Condition {} stopped after {:.2f}s.", state.condition_name, state.condition_time)
                    if self._has_questionnaires():
                        self.show_questionnaire()
                    else:
                        self.next_condition()
        elif state.countdown_running:
            state.countdown_remaining -= dt
            remaining = round(state.countdown_remaining)
            self.display.show_text(f"{timing.countdown_text} {remaining}")
            if remaining <= 0:
                state.countdown_running = False
                self.display.hide_text()
                self.show_condition()

    # --- Navigation ---
    def show_condition(self) -> None:
        """Activate only the condition under the cursor and restart its timer."""

        state = self.state
        state.condition_time = 0.0
        state.experiment_running = True
        state.trial_running = True
        for index, condition in enumerate(self._conditions):
            self.display.set_active(condition, index == state.cursor)
        state.condition_name = condition_name(self._conditions[state.cursor])
        logger.info(
            "Subject {} condition {} ({})", self.config.participant, state.cursor, state.condition_name
        )

    def hide_conditions(self) -> None:
        self.state.condition_time = 0.0
        self.state.trial_running = False
        for condition in self._conditions:
            self.display.set_active(condition, False)

    def _can_navigate(self, action: str) -> bool:
        self._require_started()
        if self.state.finished or not self.state.experiment_running:
            logger.debug("Ignoring {}: no condition is running.", action)
            return False
        return True

    def next_condition(self) -> bool:
        """Advance to the next condition, or finish the run after the last one.

        Does nothing (returns False) during the countdown or once the run
        has finished.
        """

        if not self._can_navigate("next_condition"):
            return False
        state = self.state
        if self.questionnaires is not None:
            self.questionnaires.reset_all()
            state.questionnaire_index = 0
        state.awaiting_questionnaire = False
        if state.cursor < len(self._conditions) - 1:
            state.cursor += 1
            self.show_condition()
        else:
            self.hide_conditions()
            state.experiment_running = False
            state.finished = True
            self.stop()
            logger.info("Subject {} completed all {} conditions.", self.config.participant, len(self._conditions))
        return True

    def previous_condition(self) -> bool:
        if not self._can_navigate("previous_condition") or self.state.cursor == 0:
            return False
        self.state.cursor -= 1
        self.show_condition()
        return True

    def jump_to(self, index: int) -> bool:
        """Manually move the cursor (experimenter override)."""

        self._require_started()
        if not 0 <= index < len(self._conditions):
            raise IndexError(f"Condition index {index} outside 0..{len(self._conditions) - 1}")
        if not self._can_navigate("jump_to"):
            return False
        self.state.cursor = index
        self.show_condition()
        return True

    # --- Questionnaires ---
    def _has_questionnaires(self) -> bool:
        return self.questionnaires is not None and self.questionnaires.count > 0

    def show_questionnaire(self) -> None:
        """Hide the condition and block progression until the questionnaire completes."""

        if not self._has_questionnaires():
            raise RuntimeError("No questionnaires configured for this session.")
        self.hide_conditions()
        self.state.awaiting_questionnaire = True
        self.questionnaires.start(self.state.questionnaire_index, self.config.logging.questionnaire_dir)  # type: ignore[union-attr]

    def next_questionnaire(self) -> bool:
        """Show the following questionnaire; return False when none remain."""

        gate = self.questionnaires
        if gate is None or self.state.questionnaire_index + 1 >= gate.count:
            return False
        gate.hide(self.state.questionnaire_index)
        self.state.questionnaire_index += 1
        gate.start(self.state.questionnaire_index, self.config.logging.questionnaire_dir)
        return True

    def complete_questionnaire(self) -> None:
        """Signal that the questionnaire block finished; the run moves on."""

        if not self.state.awaiting_questionnaire:
            raise RuntimeError("No questionnaire is awaiting completion.")
        self.next_condition()

    # --- Logging ---
    def log_event(self, source: Any, target: Any) -> Optional[EventRecord]:
        """Record an interaction while a condition is running."""

        self._require_started()
        if self._event_log is None or not self.state.trial_running:
            return None
        demographics = self.config.demographics
        record = EventRecord(
            timestamp=datetime.now(timezone.utc),
            experiment_name=self.config.experiment_name,
            subject_id=demographics.subject_id,
            gender=demographics.gender.value,
            age=demographics.age,
            recruitment=demographics.recruitment.value,
            condition_name=self.state.condition_name,
            condition_sequence=self.state.cursor,
            condition_time=float(self.state.condition_time),
            experiment_time=float(self.state.experiment_time),
            source=condition_name(source),
            target=condition_name(target),
            extras=self._extras(self.config.logging.event_columns),
        )
        self._event_log.append(record)
        return record

    def log_frame(self, source_position: Vector3, target_position: Vector3) -> Optional[FrameRecord]:
        """Record a positional sample while a condition is running."""

        self._require_started()
        if self._frame_log is None or not self.state.trial_running:
            return None
        demographics = self.config.demographics
        record = FrameRecord(
            timestamp=datetime.now(timezone.utc),
            experiment_name=self.config.experiment_name,
            subject_id=demographics.subject_id,
            gender=demographics.gender.value,
            age=demographics.age,
            recruitment=demographics.recruitment.value,
            condition_name=self.state.condition_name,
            condition_sequence=self.state.cursor,
            condition_time=float(self.state.condition_time),
            experiment_time=float(self.state.experiment_time),
            source_position=tuple(source_position),  # type: ignore[arg-type]
            target_position=tuple(target_position),  # type: ignore[arg-type]
            extras=self._extras(self.config.logging.frame_columns),
        )
        self._frame_log.append(record)
        return record

    def _extras(self, columns) -> Dict[str, Any]:
        return {col.header: (col.accessor(self) if col.accessor is not None else None) for col in columns}

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("Call start() before driving the session.")
