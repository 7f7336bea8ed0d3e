"""Core unit tests for configuration, records, log writers and the manifest."""
from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from jsonschema import ValidationError

from mrlab.core.config import (
    Gender,
    Recruitment,
    SequenceOption,
    condition_name,
    load_experiment_config,
    resolve_columns,
)
from mrlab.core.events import EVENT_HEADER, EventRecord, FrameRecord, format_value
from mrlab.core.io import (
    AssignmentEntry,
    AssignmentManifest,
    compute_sequence_hash,
    read_jsonl,
    write_jsonl,
)
from mrlab.core.logging import CsvLogWriter, EventLogWriter, FrameLogWriter
from mrlab.core.schema import FRAME_SCHEMA, schema_errors, validate_event_record, validate_frame_record
from mrlab.orchestration.pipeline import SequencePlan

from tests.helpers import make_session


def _write_yaml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def _record(**overrides) -> EventRecord:
    fields = dict(
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        experiment_name="unit",
        subject_id=3,
        gender="male",
        age=31,
        recruitment="staff",
        condition_name="A",
        condition_sequence=0,
        condition_time=1.25,
        experiment_time=4.0,
        source="Hand",
        target="Cube",
    )
    fields.update(overrides)
    return EventRecord(**fields)


def test_load_experiment_config_reads_all_sections(tmp_path):
    path = _write_yaml(
        tmp_path / "study.yaml",
        """
experiment_name: reach
conditions: [Near, Far, 3]
subject_id: 5
age: 24
gender: other
recruitment: invited_external
sequence: latin_square
max_permutation_items: 6
notes: pilot
timing:
  instruction_text: Look at the cube.
  countdown_seconds: 5
  use_condition_timer: false
  condition_seconds: 30
logging:
  log_dir: out/logs
  save_frame_log: false
  manifest_path: out/assignments.jsonl
  event_columns:
    - header: Trial
      accessor: condition_index
    - header: Comment
""",
    )

    cfg = load_experiment_config(path)

    assert cfg.experiment_name == "reach"
    assert cfg.conditions == ["Near", "Far", "3"]
    assert cfg.participant == 5
    assert cfg.demographics.age == 24
    assert cfg.demographics.gender is Gender.OTHER
    assert cfg.demographics.recruitment is Recruitment.INVITED_EXTERNAL
    assert cfg.sequence is SequenceOption.LATIN_SQUARE
    assert cfg.max_permutation_items == 6
    assert cfg.notes == "pilot"
    assert cfg.timing.instruction_text == "Look at the cube."
    assert cfg.timing.countdown_seconds == 5.0
    assert cfg.timing.countdown_text == "Starting in"
    assert cfg.timing.use_condition_timer is False
    assert cfg.timing.condition_seconds == 30.0
    assert cfg.logging.log_dir == Path("out/logs")
    assert cfg.logging.save_event_log is True
    assert cfg.logging.save_frame_log is False
    assert cfg.logging.manifest_path == Path("out/assignments.jsonl")
    assert [c.header for c in cfg.logging.event_columns] == ["Trial", "Comment"]
    assert cfg.logging.event_columns[0].accessor is not None
    assert cfg.logging.event_columns[1].accessor is None


def test_load_experiment_config_defaults(tmp_path):
    path = _write_yaml(tmp_path / "min.yaml", "experiment_name: x\nconditions: [a, b]\nsubject_id: 0\n")
    cfg = load_experiment_config(path)
    assert cfg.sequence is SequenceOption.BALANCED_LATIN_SQUARE
    assert cfg.demographics.gender is Gender.NOT_SPECIFIED
    assert cfg.demographics.recruitment is Recruitment.OTHER
    assert cfg.timing.condition_seconds == 10.0
    assert cfg.logging.manifest_path is None
    assert cfg.max_permutation_items == 8


@pytest.mark.parametrize(
    "text",
    [
        "conditions: [a]\nsubject_id: 0\n",
        "experiment_name: x\nconditions: []\nsubject_id: 0\n",
        "experiment_name: x\nconditions: a\nsubject_id: 0\n",
        "experiment_name: x\nconditions: [a]\nsubject_id: -1\n",
        "experiment_name: x\nconditions: [a]\nsubject_id: 0\nsequence: zigzag\n",
        "experiment_name: x\nconditions: [a]\nsubject_id: 0\ngender: unknown\n",
        "experiment_name: x\nconditions: [a]\nsubject_id: 0\nlogging:\n  event_columns:\n    - accessor: subject_id\n",
    ],
)
def test_load_experiment_config_rejects_invalid_files(tmp_path, text):
    path = _write_yaml(tmp_path / "bad.yaml", text)
    with pytest.raises(ValueError) as excinfo:
        load_experiment_config(path)
    assert "bad.yaml" in str(excinfo.value)


def test_resolve_columns_rejects_unknown_accessor():
    with pytest.raises(KeyError):
        resolve_columns([{"header": "X", "accessor": "heart_rate"}])


def test_condition_name_prefers_name_attribute():
    class Scene:
        name = "Forest"

    assert condition_name(Scene()) == "Forest"
    assert condition_name(7) == "7"


def test_format_value_renders_invariant_text():
    assert format_value(None) == "NULL"
    assert format_value(0.1) == "0.1"
    assert format_value(2.0) == "2.0"
    assert format_value(3) == "3"
    assert format_value(True) == "True"
    assert format_value(Gender.FEMALE) == "female"
    assert format_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"


def test_event_record_row_orders_fields_like_header():
    record = _record(extras={"Trial": 2})
    row = record.row(["Trial", "Absent"])
    assert len(row) == len(EVENT_HEADER) + 2
    named = dict(zip(list(EVENT_HEADER) + ["Trial", "Absent"], row))
    assert named["ConditionName"] == "A"
    assert named["ConditionSequence"] == "0"
    assert named["ConditionTime"] == "1.25"
    assert named["Trial"] == "2"
    assert named["Absent"] == "NULL"


def test_schema_accepts_valid_record():
    validate_event_record(_record(extras={"Trial": 1}).to_dict())


def test_schema_rejects_negative_sequence():
    with pytest.raises(ValidationError):
        validate_event_record(_record(condition_sequence=-1).to_dict())


def test_event_writer_validates_before_writing(tmp_path):
    with EventLogWriter(tmp_path, validate=True) as writer:
        with pytest.raises(ValidationError):
            writer.append(_record(age=-3))
        assert writer.rows_written == 0
        writer.append(_record())
        assert writer.rows_written == 1


def test_event_writer_can_skip_validation(tmp_path):
    with EventLogWriter(tmp_path, validate=False) as writer:
        writer.append(_record(age=-3))
        assert writer.rows_written == 1


def test_csv_writer_flushes_each_row_and_refuses_after_close(tmp_path):
    writer = CsvLogWriter(tmp_path / "nested", "eventLog", ["A", "B"], ["C"])
    assert writer.path.name.startswith("eventLog_")
    assert writer.path.suffix == ".csv"
    writer.write_row(["1", "2", "NULL"])

    with writer.path.open("r", encoding="utf-8", newline="") as fh:
        assert list(csv.reader(fh)) == [["A", "B", "C"], ["1", "2", "NULL"]]

    writer.close()
    writer.close()
    assert writer.closed
    with pytest.raises(RuntimeError):
        writer.write_row(["x", "y", "z"])


def test_csv_writer_never_overwrites_existing_files(tmp_path):
    first = CsvLogWriter(tmp_path, "frameLog", ["A"])
    second = CsvLogWriter(tmp_path, "frameLog", ["A"])
    assert first.path != second.path
    first.close()
    second.close()


def test_compute_sequence_hash_depends_on_order():
    assert compute_sequence_hash("A", "B") == compute_sequence_hash("A", "B")
    assert compute_sequence_hash("A", "B") != compute_sequence_hash("B", "A")
    assert compute_sequence_hash("AB") != compute_sequence_hash("A", "B")


def test_manifest_is_idempotent_and_resumes(tmp_path):
    path = tmp_path / "runs" / "manifest.jsonl"
    plan = SequencePlan(participant=1, option=SequenceOption.LATIN_SQUARE, order=["B", "C", "A"])
    entry = plan.to_entry(run_id="run-1", experiment_name="unit", block="pilot")

    manifest = AssignmentManifest(path)
    manifest.append(entry)
    manifest.append(entry)
    assert len(manifest) == 1
    assert manifest.has_run("run-1")

    resumed = AssignmentManifest(path)
    assert resumed.has_run("run-1")
    resumed.append(entry)
    resumed.append(
        AssignmentEntry(
            run_id="run-2",
            experiment_name="unit",
            subject_id=2,
            strategy="latin_square",
            order=["C", "A", "B"],
            sequence_hash=compute_sequence_hash("C", "A", "B"),
        )
    )

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["strategy"] == "latin_square"
    assert first["order"] == ["B", "C", "A"]
    assert first["params"] == {"block": "pilot"}
    assert first["sequence_hash"] == plan.sequence_hash


def test_jsonl_roundtrip_encodes_paths_and_enums(tmp_path):
    path = tmp_path / "out" / "records.jsonl"
    write_jsonl(
        [{"strategy": SequenceOption.SHUFFLE, "log": Path("logs/a.csv")}, {"n": 2}],
        path,
    )
    assert read_jsonl(path) == [{"strategy": "shuffle", "log": "logs/a.csv"}, {"n": 2}]


def test_session_uses_config_log_dir(tmp_path):
    session = make_session(tmp_path / "logs")
    with session:
        session.start()
        assert session.event_log.path.parent == tmp_path / "logs"
        assert session.frame_log.path.name.startswith("frameLog_")


def test_validation_default_follows_environment_switch(tmp_path, monkeypatch):
    monkeypatch.setattr("mrlab.core.logging._DEFAULT_VALIDATE", False)
    with EventLogWriter(tmp_path) as writer:
        writer.append(_record(age=-3))
        assert writer.rows_written == 1

    monkeypatch.setattr("mrlab.core.logging._DEFAULT_VALIDATE", True)
    with EventLogWriter(tmp_path / "strict") as writer:
        with pytest.raises(ValidationError):
            writer.append(_record(age=-3))


def _frame(**overrides) -> FrameRecord:
    fields = dict(
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        experiment_name="unit",
        subject_id=3,
        gender="male",
        age=31,
        recruitment="staff",
        condition_name="A",
        condition_sequence=1,
        condition_time=0.5,
        experiment_time=2.5,
        source_position=(0.0, 1.5, 2.0),
        target_position=(1, 2, 3),
    )
    fields.update(overrides)
    return FrameRecord(**fields)


def test_schema_errors_lists_every_violation():
    data = _record(age=-1, condition_sequence=-2).to_dict()
    messages = schema_errors(data)
    assert len(messages) == 2
    assert messages[0].startswith("age:")
    assert messages[1].startswith("condition_sequence:")
    assert schema_errors(_record().to_dict()) == []


def test_frame_schema_checks_vector_length():
    validate_frame_record(_frame().to_dict())
    data = _frame().to_dict()
    data["source_position"] = [1.0, 2.0]
    with pytest.raises(ValidationError):
        validate_frame_record(data)
    assert schema_errors(data, FRAME_SCHEMA)[0].startswith("source_position:")


def test_frame_writer_rejects_invalid_rows(tmp_path):
    with FrameLogWriter(tmp_path, validate=True) as writer:
        with pytest.raises(ValidationError):
            writer.append(_frame(condition_time=-1.0))
        writer.append(_frame())
        assert writer.rows_written == 1


def test_manifest_reports_orders_per_subject(tmp_path):
    path = tmp_path / "manifest.jsonl"
    manifest = AssignmentManifest(path)
    for run_id, subject, order in [("r1", 0, ["A", "B"]), ("r2", 1, ["B", "A"]), ("r3", 0, ["B", "A"])]:
        written = manifest.append(
            AssignmentEntry(
                run_id=run_id,
                experiment_name="unit",
                subject_id=subject,
                strategy="shuffle",
                order=order,
                sequence_hash=compute_sequence_hash(*order),
            )
        )
        assert written
    assert manifest.orders_for(0) == [["A", "B"], ["B", "A"]]
    assert manifest.orders_for(5) == []
    assert AssignmentManifest(path).orders_for(1) == [["B", "A"]]
    assert not manifest.append(
        AssignmentEntry(
            run_id="r1",
            experiment_name="unit",
            subject_id=0,
            strategy="shuffle",
            order=["A", "B"],
            sequence_hash="",
        )
    )
