"""CSV event/frame log writers and diagnostic logging setup."""
from __future__ import annotations

import csv
import os
import sys
import time
from pathlib import Path
from typing import IO, List, Optional, Sequence

from jsonschema import ValidationError
from loguru import logger

from .events import EVENT_HEADER, FRAME_HEADER, EventRecord, FrameRecord
from .schema import EVENT_SCHEMA, FRAME_SCHEMA, schema_errors, validate_event_record, validate_frame_record

_DEFAULT_VALIDATE = os.getenv("MRLAB_VALIDATE_LOGS", "1").lower() not in {"0", "false", "no"}


def _should_validate(flag: Optional[bool]) -> bool:
    return _DEFAULT_VALIDATE if flag is None else flag


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a stderr sink at ``level``."""

    logger.remove()
    logger.add(sys.stderr, level=level.upper())


class CsvLogWriter:
    """Append-only CSV sink that opens a fresh file per run and flushes each row."""

    def __init__(self, directory: Path, prefix: str, header: Sequence[str], extra_headers: Sequence[str] = ()):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.extra_headers: List[str] = list(extra_headers)
        self.header: List[str] = list(header) + self.extra_headers
        self.path = self._fresh_path(prefix)
        self._fh: Optional[IO[str]] = self.path.open("x", encoding="utf-8", newline="")
        self._writer = csv.writer(self._fh)
        self.rows_written = 0
        self._write(self.header)
        logger.info("Opened log file {}", self.path)

    def _fresh_path(self, prefix: str) -> Path:
        stamp = time.time_ns()
        path = self.directory / f"{prefix}_{stamp}.csv"
        while path.exists():
            stamp += 1
            path = self.directory / f"{prefix}_{stamp}.csv"
        return path

    @property
    def closed(self) -> bool:
        return self._fh is None

    def _write(self, values: Sequence[str]) -> None:
        if self._fh is None:
            raise RuntimeError(f"Log file {self.path} is already closed.")
        self._writer.writerow(values)
        self._fh.flush()

    def write_row(self, values: Sequence[str]) -> None:
        self._write(values)
        self.rows_written += 1

    def _reject(self, data, schema_name: str) -> None:
        logger.error("Rejected row for {}: {}", self.path.name, "; ".join(schema_errors(data, schema_name)))

    def close(self) -> None:
        if self._fh is None:
            return
        self._fh.close()
        self._fh = None

    def __enter__(self) -> "CsvLogWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventLogWriter(CsvLogWriter):
    """Writes EventRecord rows under the fixed event header."""

    def __init__(self, directory: Path, extra_headers: Sequence[str] = (), *, validate: Optional[bool] = None):
        super().__init__(directory, "eventLog", EVENT_HEADER, extra_headers)
        self._validate = _should_validate(validate)

    def append(self, record: EventRecord) -> None:
        if self._validate:
            data = record.to_dict()
            try:
                validate_event_record(data)
            except ValidationError:
                self._reject(data, EVENT_SCHEMA)
                raise
        self.write_row(record.row(self.extra_headers))


class FrameLogWriter(CsvLogWriter):
    """Writes FrameRecord rows under the fixed frame header."""

    def __init__(self, directory: Path, extra_headers: Sequence[str] = (), *, validate: Optional[bool] = None):
        super().__init__(directory, "frameLog", FRAME_HEADER, extra_headers)
        self._validate = _should_validate(validate)

    def append(self, record: FrameRecord) -> None:
        if self._validate:
            data = record.to_dict()
            try:
                validate_frame_record(data)
            except ValidationError:
                self._reject(data, FRAME_SCHEMA)
                raise
        self.write_row(record.row(self.extra_headers))
