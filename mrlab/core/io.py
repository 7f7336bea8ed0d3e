"""JSONL serialization utilities for sequence assignments."""
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger


@dataclass
class AssignmentEntry:
    """Record describing the condition order assigned to one run."""

    run_id: str
    experiment_name: str
    subject_id: int
    strategy: str
    order: Sequence[str]
    sequence_hash: str
    started_at: Optional[datetime] = None
    params: Dict[str, object] = field(default_factory=dict)


class AssignmentManifest:
    """Append-only JSONL record of the orders handed out, one line per run.

    Reopening an existing file resumes it: run ids already present are
    skipped on append, so repeating a start-up step cannot duplicate lines.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._runs: Dict[str, dict] = {}
        if self.path.exists():
            for data in read_jsonl(self.path):
                run_id = data.get("run_id")
                if isinstance(run_id, str):
                    self._runs.setdefault(run_id, data)

    def has_run(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._runs

    def append(self, entry: AssignmentEntry) -> bool:
        """Write ``entry`` unless its run id is already recorded; return True if written."""

        line = json.dumps(asdict(entry), default=_encode, ensure_ascii=False)
        with self._lock:
            if entry.run_id in self._runs:
                logger.debug("Run {} already recorded in {}", entry.run_id, self.path)
                return False
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
            self._runs[entry.run_id] = json.loads(line)
        return True

    def orders_for(self, subject_id: int) -> List[List[str]]:
        """Orders previously assigned to ``subject_id``, oldest first."""

        with self._lock:
            return [
                list(data.get("order", []))
                for data in self._runs.values()
                if data.get("subject_id") == subject_id
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)


def compute_sequence_hash(*names: str) -> str:
    """Return a deterministic hash of an ordered list of condition names."""

    h = hashlib.sha256()
    for name in names:
        h.update(name.encode("utf-8"))
        h.update(b"\x1f")
    return h.hexdigest()


def _encode(obj):  # type: ignore[override]
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def write_jsonl(records: Iterable[dict], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, default=_encode, ensure_ascii=False) + "\n")


def read_jsonl(path: Path) -> List[dict]:
    """Return raw dicts (not re-hydrated dataclasses) for analysis."""

    objs: List[dict] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            objs.append(json.loads(line))
    return objs
