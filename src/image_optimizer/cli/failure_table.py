"""Failure table display for optimization runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..config.constants import (
    ERROR_MSG_TRUNCATE_LENGTH,
    FILENAME_TRUNCATE_LENGTH,
    MAX_ERROR_MSG_LENGTH,
    MAX_FILENAME_LENGTH,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core import ProcessingJob


def _truncate(text: str, limit: int, keep: int) -> str:
    return text[:keep] + "..." if len(text) > limit else text


def print_failure_table(failed_jobs: Sequence[ProcessingJob]) -> None:
    """
    Print a simple table of the files that ended in an error state.

    Args:
        failed_jobs: Jobs with status error or lfs_error

    """
    if not failed_jobs:
        return

    print("\n" + "=" * 80)
    print(f"{'OPTIMIZATION FAILURES':^80}")
    print("=" * 80)
    print(f"Total failed: {len(failed_jobs)} files\n")

    print(f"{'FILE':<40} | {'ERROR':<35}")
    print("-" * 80)

    for job in failed_jobs:
        filename = _truncate(job.filename, MAX_FILENAME_LENGTH, FILENAME_TRUNCATE_LENGTH)
        error_msg = _truncate(job.error or "Unknown error", MAX_ERROR_MSG_LENGTH, ERROR_MSG_TRUNCATE_LENGTH)
        print(f"{filename:<40} | {error_msg:<35}")

    print("\n💡 TIP: Check file permissions, disk space, or run with --resume to retry failed files\n")
