"""End-to-end tests of the command line interface."""

import json
from pathlib import Path

import pytest
from PIL import Image

from image_optimizer.cli import ImageOptimizerCLI
from image_optimizer.cli.commands.optimize import format_bytes


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A project directory with one real image and a webp-only .imagerc."""
    (tmp_path / "original" / "blog").mkdir(parents=True)
    Image.new("RGB", (320, 240), (10, 120, 200)).save(tmp_path / "original" / "blog" / "photo.jpg", format="JPEG")
    (tmp_path / ".imagerc").write_text(
        json.dumps({"formats": ["webp"], "thermalThrottling": False, "retry": {"baseDelayMs": 1}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _run(*args: str) -> int:
    return ImageOptimizerCLI().run(list(args))


def test_optimize_then_skip(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test a full run followed by an incremental no-op run."""
    assert _run("optimize") == 0
    out = capsys.readouterr().out
    assert "Optimization complete!" in out
    assert "Processed: 1 images" in out
    assert "Size Statistics" in out
    assert (project / "optimized" / "blog" / "photo.webp").exists()
    assert (project / "optimized" / "blog" / "photo-thumb.webp").exists()
    assert (project / ".image-optimization-state.json").exists()

    assert _run("optimize") == 0
    out = capsys.readouterr().out
    assert "Processed: 0 images" in out
    assert "Skipped: 1 images (already up to date)" in out


def test_strict_run_stops_on_corrupt_image(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test that a corrupt image aborts the batch with exit code 1."""
    (project / "original" / "a-broken.jpg").write_bytes(b"not a jpeg")

    assert _run("optimize") == 1

    out = capsys.readouterr().out
    assert "Batch stopped early" in out
    assert "Error details written to image-optimization-errors.log" in out
    assert not (project / "optimized" / "blog" / "photo.webp").exists()
    entries = (project / "image-optimization-errors.log").read_text(encoding="utf-8").splitlines()
    assert json.loads(entries[0])["error"]["code"] == "INVALID_INPUT"


def test_continue_on_error_then_resume(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test that failures are tabulated and a resume only retries the failed file."""
    broken = project / "original" / "a-broken.jpg"
    broken.write_bytes(b"not a jpeg")

    assert _run("optimize", "--continue-on-error") == 1
    out = capsys.readouterr().out
    assert "Errors: 1 images" in out
    assert "OPTIMIZATION FAILURES" in out
    assert (project / "optimized" / "blog" / "photo.webp").exists()

    Image.new("RGB", (64, 64), (0, 0, 0)).save(broken, format="JPEG")
    assert _run("optimize", "--resume") == 0
    out = capsys.readouterr().out
    assert "Resuming from previous state (1 files already done)" in out
    assert "Processed: 1 images" in out


def test_dry_run_writes_nothing(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test that a dry run only reports."""
    assert _run("optimize", "--dry-run") == 0

    out = capsys.readouterr().out
    assert "Would process: 1 images" in out
    assert not (project / "optimized").exists()
    assert not (project / ".image-optimization-state.json").exists()


def test_cli_overrides_output_dir_and_formats(project: Path) -> None:
    """Test that command line options take precedence over .imagerc."""
    assert _run("optimize", "--quiet", "--output-dir", "public", "--formats", "original") == 0

    assert (project / "public" / "blog" / "photo.jpg").exists()
    assert not (project / "public" / "blog" / "photo.webp").exists()


def test_state_report_and_clear(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test inspecting and discarding the saved state."""
    _run("optimize", "--quiet")
    capsys.readouterr()

    assert _run("state", "show") == 0
    assert "Progress: 1/1 (1 succeeded, 0 failed)" in capsys.readouterr().out

    assert _run("state", "report", "--json") == 0
    report = json.loads(capsys.readouterr().out)
    assert report["summary"] == {"total": 1, "succeeded": 1, "failed": 0, "successRate": "100.0%"}

    assert _run("state", "clear") == 0
    assert "Removed state file" in capsys.readouterr().out
    assert not (project / ".image-optimization-state.json").exists()


def test_info(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the configuration overview."""
    assert _run("info") == 0

    out = capsys.readouterr().out
    assert "Formats:          webp" in out
    assert "webp: ✓ available" in out


def test_invalid_config_exits_with_error(project: Path) -> None:
    """Test that configuration errors are reported with exit code 1."""
    (project / ".imagerc").write_text('{"formats": ["tiff"]}', encoding="utf-8")

    assert _run("optimize") == 1


def test_missing_input_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that a missing input directory fails cleanly."""
    monkeypatch.chdir(tmp_path)

    assert _run("optimize", "does-not-exist", "--quiet") == 1


@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0 Bytes"), (512, "512 Bytes"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5 MB")],
)
def test_format_bytes(size: int, expected: str) -> None:
    """Test human readable sizes."""
    assert format_bytes(size) == expected
