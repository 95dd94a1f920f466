"""Tests for the retry envelope and the error audit log."""

import errno
import json
from pathlib import Path

import pytest

from image_optimizer.config import RetryConfig
from image_optimizer.core import ErrorKind, ErrorLog, ProcessingError, RetryExecutor, classify_error


class Flaky:
    """Raises the queued errors in order, then returns a value."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "done"


def _busy() -> OSError:
    return OSError(errno.EBUSY, "Device or resource busy")


def _executor(tmp_path: Path, sleeps: list[float], **kwargs) -> RetryExecutor:
    policy = RetryConfig(**{"max_retries": 3, "base_delay_ms": 1000, **kwargs.pop("policy", {})})
    return RetryExecutor(policy, ErrorLog(tmp_path / "errors.log"), sleep=sleeps.append, **kwargs)


def test_success_on_last_attempt_writes_no_audit_entry(tmp_path: Path) -> None:
    """Test that transient errors followed by success report the attempt count only."""
    sleeps: list[float] = []
    executor = _executor(tmp_path, sleeps)
    operation = Flaky(_busy(), _busy())

    outcome = executor.run(operation, {"file": "a.jpg"})

    assert outcome.success
    assert outcome.attempts == 3
    assert outcome.result == "done"
    assert not (tmp_path / "errors.log").exists()


def test_always_transient_exhausts_with_backoff(tmp_path: Path) -> None:
    """Test that three attempts are made with 1000ms and 2000ms delays before giving up."""
    sleeps: list[float] = []
    executor = _executor(tmp_path, sleeps, continue_on_error=True)
    operation = Flaky(_busy(), _busy(), _busy())

    outcome = executor.run(operation, {"file": "a.jpg", "stage": "transcode"})

    assert not outcome.success
    assert outcome.attempts == 3
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]

    entries = [json.loads(line) for line in (tmp_path / "errors.log").read_text(encoding="utf-8").splitlines()]
    assert len(entries) == 1
    assert entries[0]["file"] == "a.jpg"
    assert entries[0]["context"] == {"file": "a.jpg", "stage": "transcode", "attempt": 3}
    assert entries[0]["error"]["code"] == "EBUSY"
    assert entries[0]["error"]["type"] == "OSError"
    assert entries[0]["timestamp"]


def test_constant_delay_without_backoff(tmp_path: Path) -> None:
    """Test that disabling backoff keeps the base delay."""
    sleeps: list[float] = []
    executor = _executor(tmp_path, sleeps, continue_on_error=True, policy={"exponential_backoff": False})

    executor.run(Flaky(_busy(), _busy(), _busy()), {"file": "a.jpg"})

    assert sleeps == [1.0, 1.0]
    assert [executor.delay_for(attempt) for attempt in (1, 2, 3)] == [1000, 1000, 1000]


def test_non_retryable_error_fails_immediately(tmp_path: Path) -> None:
    """Test that a permanent error is not retried."""
    sleeps: list[float] = []
    executor = _executor(tmp_path, sleeps, continue_on_error=True)
    error = ProcessingError("corrupt", kind=ErrorKind.INVALID_INPUT)
    operation = Flaky(error)

    outcome = executor.run(operation, {"file": "a.jpg"})

    assert not outcome.success
    assert outcome.attempts == 1
    assert outcome.error is error
    assert sleeps == []
    assert executor.error_log.read_entries()[0]["context"]["attempt"] == 1


def test_strict_mode_reraises_after_logging(tmp_path: Path) -> None:
    """Test that without continue_on_error the fatal error propagates after being logged."""
    executor = _executor(tmp_path, [])
    error = PermissionError(errno.EACCES, "Permission denied")

    with pytest.raises(PermissionError):
        executor.run(Flaky(error), {"file": "a.jpg"})

    entries = executor.error_log.read_entries()
    assert entries[0]["error"]["code"] == "EACCES"


def test_record_failure_applies_policy(tmp_path: Path) -> None:
    """Test fatal errors reported from outside the envelope."""
    error = ProcessingError("Cannot stat a.jpg", kind=ErrorKind.NOT_FOUND)

    lenient = _executor(tmp_path, [], continue_on_error=True)
    outcome = lenient.record_failure(error, {"file": "a.jpg", "stage": "change_check"})
    assert not outcome.success
    assert outcome.attempts == 1

    strict = _executor(tmp_path, [])
    with pytest.raises(ProcessingError):
        strict.record_failure(error, {"file": "a.jpg"})

    assert len(ErrorLog(tmp_path / "errors.log").read_entries()) == 2


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (OSError(errno.EBUSY, "busy"), ErrorKind.TRANSIENT_IO),
        (TimeoutError("timed out"), ErrorKind.TIMEOUT),
        (ConnectionResetError("reset"), ErrorKind.CONNECTION_RESET),
        (FileNotFoundError(errno.ENOENT, "missing"), ErrorKind.NOT_FOUND),
        (PermissionError(errno.EACCES, "denied"), ErrorKind.PERMISSION_DENIED),
        (ValueError("ETIMEDOUT in the message is not enough"), ErrorKind.UNKNOWN),
        (ProcessingError("pull", kind=ErrorKind.LFS_RETRIEVAL), ErrorKind.LFS_RETRIEVAL),
    ],
)
def test_classify_error_uses_types_not_messages(error: Exception, kind: ErrorKind) -> None:
    """Test error classification by exception type and errno."""
    assert classify_error(error) is kind


def test_read_entries_skips_malformed_lines(tmp_path: Path) -> None:
    """Test that a damaged audit log still yields its valid entries."""
    log_path = tmp_path / "errors.log"
    log_path.write_text('{"file": "a.jpg"}\nnot json\n\n{"file": "b.jpg"}\n', encoding="utf-8")

    entries = ErrorLog(log_path).read_entries()

    assert [entry["file"] for entry in entries] == ["a.jpg", "b.jpg"]
