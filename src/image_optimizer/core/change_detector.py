"""Incremental change detection based on file modification times."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .base import ErrorKind, ProcessingError, classify_error

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

LOG = logging.getLogger(__name__)


class TimestampProvider(Protocol):
    """Source of file modification times."""

    def mtime(self, path: Path) -> float: ...


class FileTimestamps:
    """Timestamp provider backed by os.stat."""

    def mtime(self, path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError as e:
            kind = classify_error(e)
            if kind is ErrorKind.UNKNOWN:
                kind = ErrorKind.UNREADABLE
            msg = f"Cannot stat {path}: {e}"
            raise ProcessingError(msg, file_path=path, cause=e, kind=kind) from e


class ChangeDetector:
    """Decides whether an input image needs (re)processing."""

    def __init__(self, timestamps: TimestampProvider | None = None) -> None:
        self.timestamps = timestamps or FileTimestamps()

    def should_process(self, input_path: Path, expected_outputs: Iterable[Path], force: bool = False) -> bool:
        """
        Return False only when every expected output is at least as new as the input.

        A failure to stat the input propagates; a failure to stat an output
        means that output has to be (re)created.
        """
        if force:
            return True

        input_mtime = self.timestamps.mtime(input_path)

        outputs = list(expected_outputs)
        if not outputs:
            return True

        for output_path in outputs:
            try:
                output_mtime = self.timestamps.mtime(output_path)
            except ProcessingError as e:
                LOG.debug("Output %s unavailable (%s), reprocessing %s", output_path, e.code, input_path.name)
                return True
            if output_mtime < input_mtime:
                LOG.debug("Output %s is older than %s", output_path, input_path.name)
                return True

        return False
