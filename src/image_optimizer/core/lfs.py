"""Git LFS pointer detection and retrieval."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config.constants import LFS_POINTER_MAX_SIZE, LFS_POINTER_PREFIX, LFS_PULL_TIMEOUT
from .base import ErrorKind, ProcessingError

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)


@dataclass
class PullResult:
    """Outcome of a git lfs pull for one file."""

    success: bool
    error: str | None = None
    kind: ErrorKind | None = None


class GitLfsError(ProcessingError):
    """Git LFS retrieval error."""

    def __init__(self, message: str, *, file_path: Path | None = None, kind: ErrorKind = ErrorKind.LFS_RETRIEVAL) -> None:
        super().__init__(message, file_path=file_path, kind=kind)


class GitLfsDetector:
    """Detects Git LFS pointer files committed in place of real images."""

    @staticmethod
    def is_pointer(file_path: Path) -> bool:
        try:
            with file_path.open("rb") as f:
                head = f.read(LFS_POINTER_MAX_SIZE + 1)
        except OSError:
            return False
        if len(head) > LFS_POINTER_MAX_SIZE:
            return False
        return head.startswith(LFS_POINTER_PREFIX)


class GitLfsPuller:
    """Fetches the real content of pointer files via the git executable."""

    def __init__(self, timeout: int = LFS_PULL_TIMEOUT) -> None:
        self.timeout = timeout

    @staticmethod
    def check_availability() -> None:
        """Check that git is on the PATH."""
        if not shutil.which("git"):
            msg = "Missing git executable, cannot pull LFS files"
            LOG.error(msg)
            raise GitLfsError(msg, kind=ErrorKind.UNKNOWN)

    def pull(self, file_path: Path) -> PullResult:
        """Run `git lfs pull` restricted to a single file."""
        try:
            self.check_availability()
        except GitLfsError as e:
            return PullResult(success=False, error=str(e), kind=e.kind)

        cmd = ["git", "lfs", "pull", f"--include={file_path}"]
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.CalledProcessError as e:
            error_details = (e.stderr or e.stdout or "No error output").strip()
            return PullResult(success=False, error=f"git lfs pull failed: {error_details}", kind=ErrorKind.LFS_RETRIEVAL)
        except subprocess.TimeoutExpired:
            return PullResult(success=False, error=f"git lfs pull timed out for {file_path}", kind=ErrorKind.TIMEOUT)
        except OSError as e:
            return PullResult(success=False, error=str(e), kind=ErrorKind.UNKNOWN)

        if result.stdout.strip():
            LOG.debug(result.stdout.strip())
        return PullResult(success=True)
