"""Small CLI helpers and an end-to-end headless validator for CI.

`e2e_validate_headless()` runs a complete session with a recording display,
logging one event per condition, and checks that the CSV log carries one row
per condition in the assigned order. `main()` exposes it together with an
`order` command that prints a participant's condition order from a YAML file.
"""
from __future__ import annotations

import argparse
import csv
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from loguru import logger

from mrlab.core.config import (
    Demographics,
    ExperimentConfig,
    Gender,
    LogColumn,
    LoggingOptions,
    Recruitment,
    SequenceOption,
    StudyTiming,
    COLUMN_ACCESSORS,
    load_experiment_config,
)
from mrlab.core.events import EVENT_HEADER
from mrlab.core.logging import configure_logging
from mrlab.core.session import ExperimentSession
from mrlab.orchestration.pipeline import apply_sequence

DEMO_CONDITIONS: Tuple[str, ...] = ("Baseline", "LowLoad", "HighLoad", "Distractor")


def _demo_config(subject_id: int, log_dir: Path, option: SequenceOption) -> ExperimentConfig:
    return ExperimentConfig(
        experiment_name="headless-demo",
        conditions=list(DEMO_CONDITIONS),
        demographics=Demographics(
            subject_id=subject_id,
            age=30,
            gender=Gender.NOT_SPECIFIED,
            recruitment=Recruitment.STAFF,
        ),
        sequence=option,
        timing=StudyTiming(instruction_text="Press space to begin.", countdown_seconds=1.0, condition_seconds=2.0),
        logging=LoggingOptions(
            log_dir=log_dir,
            save_frame_log=False,
            event_columns=(
                LogColumn("ConditionCount", COLUMN_ACCESSORS["condition_count"]),
                LogColumn("Unassigned"),
            ),
        ),
    )


def _read_rows(path: Path) -> List[List[str]]:
    with path.open("r", encoding="utf-8", newline="") as fh:
        return list(csv.reader(fh))


def e2e_validate_headless(
    subject_id: int = 0,
    log_dir: Optional[Path] = None,
    option: SequenceOption = SequenceOption.BALANCED_LATIN_SQUARE,
) -> Tuple[ExperimentSession, List[List[str]]]:
    """Drive a demo run to completion and validate its event log.

    Returns the finished session and the parsed CSV rows (header first).
    Raises AssertionError on validation failures.
    """
    if log_dir is None:
        log_dir = Path(tempfile.mkdtemp(prefix="mrlab-"))
    config = _demo_config(subject_id, log_dir, option)
    session = ExperimentSession(config=config)
    with session:
        plan = session.start()
        session.start_countdown()
        while session.state.countdown_running:
            session.tick(0.5)
        for _ in range(len(DEMO_CONDITIONS)):
            session.log_event("Camera", session.current_condition_name)
            cursor = session.current_condition
            while not session.state.finished and session.current_condition == cursor:
                session.tick(0.5)

    assert session.state.finished, "Run did not reach the end of the condition list."
    writer = session.event_log
    assert writer is not None
    rows = _read_rows(writer.path)
    assert rows[0] == list(EVENT_HEADER) + ["ConditionCount", "Unassigned"]
    body = rows[1:]
    assert len(body) == len(DEMO_CONDITIONS), f"Expected {len(DEMO_CONDITIONS)} rows, got {len(body)}"
    name_col = EVENT_HEADER.index("ConditionName")
    seq_col = EVENT_HEADER.index("ConditionSequence")
    assert [row[name_col] for row in body] == plan.names
    assert [int(row[seq_col]) for row in body] == list(range(len(DEMO_CONDITIONS)))
    assert all(row[-1] == "NULL" for row in body)
    return session, rows


def _order_command(args: argparse.Namespace) -> int:
    config = load_experiment_config(args.config)
    participant = config.participant if args.participant is None else args.participant
    order = apply_sequence(
        config.sequence, config.conditions, participant, max_items=config.max_permutation_items
    )
    print("\n".join(str(item) for item in order))
    return 0


def _validate_command(args: argparse.Namespace) -> int:
    try:
        session, rows = e2e_validate_headless(subject_id=args.participant, option=SequenceOption(args.strategy))
        print(f"Headless validation succeeded: {len(rows) - 1} events logged to {session.event_log.path}")
        return 0
    except AssertionError as e:
        print(f"Headless validation failed: {e}")
        return 2
    except Exception as e:  # pragma: no cover - unexpected error
        logger.exception("Unexpected error during headless validation")
        print(f"Unexpected error during headless validation: {e}")
        return 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mrlab", description="Counterbalanced condition sequencing.")
    parser.add_argument("--log-level", default="WARNING", help="Diagnostic log level.")
    sub = parser.add_subparsers(dest="command", required=True)

    order = sub.add_parser("order", help="Print the condition order for a participant.")
    order.add_argument("--config", type=Path, required=True, help="Experiment YAML file.")
    order.add_argument("--participant", type=int, help="Override the subject id from the config.")
    order.set_defaults(func=_order_command)

    validate = sub.add_parser("validate", help="Run a headless demo session and check its log.")
    validate.add_argument("--participant", type=int, default=0)
    validate.add_argument(
        "--strategy",
        choices=[opt.value for opt in SequenceOption],
        default=SequenceOption.BALANCED_LATIN_SQUARE.value,
    )
    validate.set_defaults(func=_validate_command)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
