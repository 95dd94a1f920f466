"""Retry envelope with exponential backoff and an append-only error audit log."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .base import classify_error

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from ..config.settings import RetryConfig

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorLog:
    """Append-only JSON-lines audit trail of fatal errors."""

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path

    def append(self, file: str, error: BaseException, context: dict[str, Any]) -> dict[str, Any]:
        """Record one error with its context and append it to the log file."""
        kind = classify_error(error)
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "file": file,
            "error": {
                "message": str(error),
                "code": kind.value,
                "type": type(error).__name__,
            },
            "context": {key: _jsonable(value) for key, value in context.items()},
        }

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            LOG.error("Failed to write to error log %s: %s", self.log_path, e)

        return entry

    def read_entries(self) -> list[dict[str, Any]]:
        """Read every entry from the log file, skipping malformed lines."""
        if not self.log_path.exists():
            return []

        entries = []
        with self.log_path.open("r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    LOG.warning("Skipping malformed line %d in %s", line_number, self.log_path)
        return entries


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass
class RetryOutcome(Generic[T]):
    """Result of running an operation inside the retry envelope."""

    success: bool
    attempts: int
    result: T | None = None
    error: BaseException | None = field(default=None, repr=False)


class RetryExecutor:
    """Runs an operation with bounded retries for transient errors."""

    def __init__(
        self,
        policy: RetryConfig,
        error_log: ErrorLog,
        *,
        continue_on_error: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy = policy
        self.error_log = error_log
        self.continue_on_error = continue_on_error
        self.sleep = sleep

    def delay_for(self, attempt: int) -> int:
        """Backoff delay in milliseconds after the given 1-based attempt."""
        if not self.policy.exponential_backoff:
            return self.policy.base_delay_ms
        return self.policy.base_delay_ms * 2 ** (attempt - 1)

    def run(self, operation: Callable[[], T], context: dict[str, Any]) -> RetryOutcome[T]:
        """
        Execute the operation, retrying transient failures.

        Args:
            operation: Zero-argument callable doing the actual work
            context: Audit context; must contain "file"

        Returns:
            RetryOutcome with the result on success. On a fatal error the
            outcome is returned only when continue_on_error is set; otherwise
            the error is re-raised after being logged.

        """
        max_retries = self.policy.max_retries
        file = str(context.get("file", "<unknown>"))

        for attempt in range(1, max_retries + 1):
            try:
                result = operation()
            except Exception as e:
                kind = classify_error(e)
                if not kind.retryable or attempt == max_retries:
                    return self.record_failure(e, {**context, "attempt": attempt})

                delay = self.delay_for(attempt)
                LOG.info(
                    "Retry attempt %d/%d for %s after %dms (%s: %s)",
                    attempt,
                    max_retries,
                    file,
                    delay,
                    kind.value,
                    e,
                )
                self.sleep(delay / 1000)
            else:
                return RetryOutcome(success=True, attempts=attempt, result=result)

        msg = "max_retries must be at least 1"
        raise ValueError(msg)

    def record_failure(self, error: Exception, context: dict[str, Any]) -> RetryOutcome[Any]:
        """Log a fatal error, then either return a failed outcome or re-raise."""
        attempt = int(context.get("attempt", 1))
        file = str(context.get("file", "<unknown>"))
        self.error_log.append(file, error, {**context, "attempt": attempt})
        LOG.error("Failed to process %s after %d attempt(s): %s", file, attempt, error)

        if self.continue_on_error:
            return RetryOutcome(success=False, attempts=attempt, error=error)
        raise error
