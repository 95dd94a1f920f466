"""Terminal progress reporting."""

from __future__ import annotations

from collections import Counter
from typing import Protocol

from tqdm import tqdm


class ProgressSink(Protocol):
    """Receives progress notifications; return values are never used."""

    def start(self, total: int) -> None: ...

    def update(self, current: int, *, status: str, filename: str) -> None: ...

    def finish(self) -> None: ...


class TqdmProgress:
    """Progress bar for image batches."""

    def __init__(self, *, quiet: bool = False) -> None:
        self.quiet = quiet
        self.bar: tqdm | None = None
        self.current = 0
        self.stats: Counter[str] = Counter()

    def start(self, total: int) -> None:
        self.current = 0
        self.stats = Counter()
        self.bar = tqdm(
            total=total,
            desc="Processing images",
            unit="img",
            disable=self.quiet or total == 0,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]{postfix}",
        )

    def update(self, current: int, *, status: str, filename: str) -> None:
        self.stats[status] += 1
        if self.bar is None:
            return
        self.bar.update(current - self.current)
        self.current = current
        symbol = {"processed": "✓", "skipped": "⏭", "error": "✗", "lfs_error": "✗"}.get(status, "•")
        self.bar.set_description(f"{symbol} {filename[:30]}")
        if self.stats["error"]:
            self.bar.set_postfix(errors=self.stats["error"])

    def finish(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


class NullProgress:
    """Progress sink that ignores every notification."""

    def start(self, total: int) -> None:
        pass

    def update(self, current: int, *, status: str, filename: str) -> None:
        pass

    def finish(self) -> None:
        pass
