"""Base types shared by the optimization pipeline."""

from __future__ import annotations

import errno
import logging
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Classification tag attached to errors where they originate."""

    TRANSIENT_IO = "EBUSY"
    TIMEOUT = "ETIMEDOUT"
    CONNECTION_RESET = "ECONNRESET"
    NOT_FOUND = "ENOENT"
    LFS_RETRIEVAL = "LFS_RETRIEVAL"
    INVALID_INPUT = "INVALID_INPUT"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    PERMISSION_DENIED = "EACCES"
    UNREADABLE = "UNREADABLE"
    UNKNOWN = "UNKNOWN"

    @property
    def retryable(self) -> bool:
        """Whether errors of this kind are transient."""
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.TRANSIENT_IO,
        ErrorKind.TIMEOUT,
        ErrorKind.CONNECTION_RESET,
        ErrorKind.NOT_FOUND,
        ErrorKind.LFS_RETRIEVAL,
    }
)

_ERRNO_KINDS = {
    errno.EBUSY: ErrorKind.TRANSIENT_IO,
    errno.EAGAIN: ErrorKind.TRANSIENT_IO,
    errno.ETIMEDOUT: ErrorKind.TIMEOUT,
    errno.ECONNRESET: ErrorKind.CONNECTION_RESET,
    errno.ENOENT: ErrorKind.NOT_FOUND,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
}


class JobStatus(Enum):
    """Status of a single input file moving through the pipeline."""

    PENDING = "pending"
    SKIPPED = "skipped"
    LFS_POINTER = "lfs_pointer"
    LFS_ERROR = "lfs_error"
    PROCESSED = "processed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self is not JobStatus.PENDING


class ProcessingError(Exception):
    """Base exception for image processing errors."""

    def __init__(
        self,
        message: str,
        file_path: Path | None = None,
        cause: Exception | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        super().__init__(message)
        self.file_path = file_path
        self.cause = cause
        if kind is None:
            kind = classify_error(cause) if cause is not None else ErrorKind.UNKNOWN
        self.kind = kind

    @property
    def code(self) -> str:
        return self.kind.value


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map an exception to its ErrorKind.

    Tagged errors keep their tag. Untagged errors are classified by exception
    type and errno only, never by inspecting the message text.
    """
    if isinstance(error, ProcessingError):
        return error.kind
    if isinstance(error, (TimeoutError, subprocess.TimeoutExpired)):
        return ErrorKind.TIMEOUT
    if isinstance(error, ConnectionResetError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(error, FileNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(error, OSError) and error.errno in _ERRNO_KINDS:
        return _ERRNO_KINDS[error.errno]
    return ErrorKind.UNKNOWN


@dataclass
class OutputSpec:
    """One requested output of a transcoding operation."""

    output_path: Path
    format: str
    quality: int | None = None
    resize: tuple[int, int] | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class OutputResult:
    """Outcome of producing a single output file."""

    path: Path
    succeeded: bool
    error_message: str | None = None
    kind: ErrorKind | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"path": str(self.path), "succeeded": self.succeeded}
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data


@dataclass
class ProcessingJob:
    """One input file moving through the pipeline."""

    input_path: Path
    filename: str
    status: JobStatus = JobStatus.PENDING
    outputs: list[OutputResult] = field(default_factory=list)
    attempts: int = 0
    error: str | None = None
    input_size: int | None = None

    @property
    def failed_outputs(self) -> list[OutputResult]:
        return [o for o in self.outputs if not o.succeeded]
