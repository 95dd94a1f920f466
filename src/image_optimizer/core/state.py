"""Resumable run state persisted as a JSON document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..config.constants import STATE_FORMAT_VERSION

if TYPE_CHECKING:
    from pathlib import Path

    from .retry import ErrorLog

LOG = logging.getLogger(__name__)


class RecordStatus(Enum):
    """Persisted outcome of a file."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class FileOutcome:
    """Outcome record stored per input path."""

    status: RecordStatus
    error: str | None = None
    outputs: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value, "outputs": list(self.outputs)}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileOutcome:
        return cls(
            status=RecordStatus(data["status"]),
            error=data.get("error"),
            outputs=list(data.get("outputs") or []),
        )


@dataclass
class StateSnapshot:
    """Run-level information the caller supplies when saving."""

    total: int
    pending: list[str] = field(default_factory=list)
    configuration: dict[str, Any] = field(default_factory=dict)
    started_at: str | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """Keeps per-file outcomes in memory and persists them atomically."""

    def __init__(self, state_path: Path, error_log: ErrorLog) -> None:
        self.state_path = state_path
        self.error_log = error_log
        self.processed: dict[str, FileOutcome] = {}

    def record_processed_file(self, path: str, outcome: FileOutcome) -> None:
        """Record (or overwrite) the outcome for a path."""
        self.processed[path] = outcome

    def is_file_processed(self, path: str) -> bool:
        return path in self.processed

    def is_file_succeeded(self, path: str) -> bool:
        outcome = self.processed.get(path)
        return outcome is not None and outcome.status is RecordStatus.SUCCESS

    def _count(self, status: RecordStatus) -> int:
        return sum(1 for outcome in self.processed.values() if outcome.status is status)

    def progress(self, total: int) -> dict[str, int]:
        """Progress counters derived from the processed map."""
        processed = len(self.processed)
        return {
            "total": total,
            "processed": processed,
            "succeeded": self._count(RecordStatus.SUCCESS),
            "failed": self._count(RecordStatus.FAILED),
            "remaining": max(total - processed, 0),
        }

    def save(self, snapshot: StateSnapshot) -> dict[str, Any]:
        """
        Write the full state document.

        Progress counters are always recomputed from the processed map. The
        document is written to a temporary file and moved over the state file
        so an interrupted write never leaves a truncated state behind.
        """
        document = {
            "version": STATE_FORMAT_VERSION,
            "startedAt": snapshot.started_at or _now(),
            "lastUpdatedAt": _now(),
            "configuration": snapshot.configuration,
            "progress": self.progress(snapshot.total),
            "files": {
                "processed": {path: outcome.to_dict() for path, outcome in self.processed.items()},
                "pending": list(snapshot.pending),
            },
        }

        directory = self.state_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f"{self.state_path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, self.state_path)
        except BaseException:
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise

        return document

    def load(self) -> dict[str, Any] | None:
        """
        Load a previous state document and restore the processed map.

        Returns None when no state exists or when it cannot be trusted.
        """
        try:
            with self.state_path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            LOG.warning("Failed to load state from %s: %s", self.state_path, e)
            return None

        if not isinstance(document, dict) or document.get("version") != STATE_FORMAT_VERSION:
            LOG.warning("State file version mismatch, ignoring saved state")
            return None

        restored: dict[str, FileOutcome] = {}
        try:
            processed = (document.get("files") or {}).get("processed") or {}
            for path, data in processed.items():
                restored[path] = FileOutcome.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            LOG.warning("Malformed state in %s, ignoring saved state: %s", self.state_path, e)
            return None

        self.processed = restored
        return document

    def clear(self) -> bool:
        """Delete the state file and forget in-memory outcomes."""
        self.processed = {}
        try:
            self.state_path.unlink()
        except FileNotFoundError:
            return False
        LOG.info("Removed state file %s", self.state_path)
        return True

    def generate_report(self) -> dict[str, Any]:
        """Audit view of the recorded outcomes."""
        total = len(self.processed)
        succeeded = self._count(RecordStatus.SUCCESS)
        failed = self._count(RecordStatus.FAILED)
        success_rate = f"{succeeded / total * 100:.1f}%" if total else "0%"

        return {
            "summary": {
                "total": total,
                "succeeded": succeeded,
                "failed": failed,
                "successRate": success_rate,
            },
            "errors": self.error_log.read_entries(),
            "errorLogPath": str(self.error_log.log_path),
        }
