"""Shared fixtures and fakes for image optimizer tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from image_optimizer.config import OptimizerConfig
from image_optimizer.core import (
    ChangeDetector,
    ErrorLog,
    GitLfsDetector,
    ImagePipeline,
    NullProgress,
    OutputResult,
    PipelineDependencies,
    PullResult,
    StateStore,
)


class FakeTranscoder:
    """Writes placeholder outputs and fails on demand."""

    def __init__(self, failures: dict[str, list[Any]] | None = None, width: int | None = None) -> None:
        # filename -> queue of exceptions to raise or failed OutputResult kinds to return
        self.failures = failures or {}
        self.width = width
        self.calls: list[tuple[Path, list]] = []

    def probe_width(self, file_path: Path) -> int | None:
        return self.width

    def transcode(self, input_path: Path, specs: list) -> list[OutputResult]:
        self.calls.append((input_path, list(specs)))
        queue = self.failures.get(input_path.name)
        if queue:
            failure = queue.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return [
                OutputResult(path=spec.output_path, succeeded=False, error_message="write failed", kind=failure)
                for spec in specs
            ]

        results = []
        for spec in specs:
            spec.output_path.parent.mkdir(parents=True, exist_ok=True)
            spec.output_path.write_bytes(b"out")
            results.append(OutputResult(path=spec.output_path, succeeded=True, size=3))
        return results

    def transcoded_names(self) -> list[str]:
        return [path.name for path, _ in self.calls]


class FakePuller:
    """Replaces pointer files with real content or reports scripted failures."""

    def __init__(self, results: list[PullResult] | None = None) -> None:
        self.results = results
        self.calls: list[Path] = []

    def pull(self, file_path: Path) -> PullResult:
        self.calls.append(file_path)
        if self.results:
            return self.results.pop(0) if len(self.results) > 1 else self.results[0]
        file_path.write_bytes(b"real image content")
        return PullResult(success=True)


LFS_POINTER = b"version https://git-lfs.github.com/spec/v1\noid sha256:4d7a2146\nsize 12345\n"


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A project root with an empty input directory."""
    (tmp_path / "original").mkdir()
    return tmp_path


def make_config(root: Path, **overrides: Any) -> OptimizerConfig:
    """Configuration rooted in a temporary directory, fast retries, no cool-down."""
    values: dict[str, Any] = {
        "input_dir": root / "original",
        "output_dir": root / "optimized",
        "formats": ["webp"],
        "generate_thumbnails": False,
        "state_file": root / "state.json",
        "error_log": root / "errors.log",
        "thermal_throttling": False,
        "retry": {"base_delay_ms": 10},
    }
    values.update(overrides)
    return OptimizerConfig.from_sources({}, values)


def make_pipeline(
    config: OptimizerConfig,
    transcoder: FakeTranscoder,
    puller: FakePuller | None = None,
    sleeps: list[float] | None = None,
) -> ImagePipeline:
    error_log = ErrorLog(config.error_log)
    dependencies = PipelineDependencies(
        transcoder=transcoder,
        lfs_detector=GitLfsDetector(),
        lfs_puller=puller or FakePuller(),
        change_detector=ChangeDetector(),
        error_log=error_log,
        state_store=StateStore(config.state_file, error_log),
        progress=NullProgress(),
        sleep=(sleeps.append if sleeps is not None else lambda _seconds: None),
    )
    return ImagePipeline(config, dependencies)


def add_images(root: Path, *names: str) -> list[Path]:
    paths = []
    for name in names:
        path = root / "original" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"fake image bytes")
        paths.append(path)
    return paths
