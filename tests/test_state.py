"""Tests for the resumable state store."""

import json
import logging
from pathlib import Path

import pytest

from image_optimizer.core import ErrorLog, FileOutcome, ProcessingError, RecordStatus, StateSnapshot, StateStore


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json", ErrorLog(tmp_path / "errors.log"))


def test_save_then_load_round_trips_processed_map(store: StateStore, tmp_path: Path) -> None:
    """Test that saved outcomes are restored with the same paths and statuses."""
    store.record_processed_file("original/a.jpg", FileOutcome(status=RecordStatus.SUCCESS))
    store.record_processed_file(
        "original/b.jpg",
        FileOutcome(
            status=RecordStatus.FAILED,
            error="corrupt",
            outputs=[{"path": "optimized/b.webp", "succeeded": False, "errorMessage": "corrupt"}],
        ),
    )
    store.save(StateSnapshot(total=3, pending=["original/c.jpg"], configuration={"formats": ["webp"]}))

    restored = StateStore(store.state_path, ErrorLog(tmp_path / "errors.log"))
    document = restored.load()

    assert document is not None
    assert document["version"] == "1.0"
    assert document["files"]["pending"] == ["original/c.jpg"]
    assert document["configuration"] == {"formats": ["webp"]}
    assert {path: outcome.status for path, outcome in restored.processed.items()} == {
        "original/a.jpg": RecordStatus.SUCCESS,
        "original/b.jpg": RecordStatus.FAILED,
    }
    assert restored.processed["original/b.jpg"].outputs[0]["errorMessage"] == "corrupt"
    assert restored.is_file_succeeded("original/a.jpg")
    assert not restored.is_file_succeeded("original/b.jpg")
    assert restored.is_file_processed("original/b.jpg")


def test_progress_is_recomputed_from_processed_map(store: StateStore) -> None:
    """Test that stored counters always agree with the per-file outcomes."""
    store.record_processed_file("a", FileOutcome(status=RecordStatus.SUCCESS))
    store.record_processed_file("b", FileOutcome(status=RecordStatus.FAILED))
    store.record_processed_file("c", FileOutcome(status=RecordStatus.SKIPPED))

    document = store.save(StateSnapshot(total=5))

    assert document["progress"] == {"total": 5, "processed": 3, "succeeded": 1, "failed": 1, "remaining": 2}
    on_disk = json.loads(store.state_path.read_text(encoding="utf-8"))
    assert on_disk["progress"] == document["progress"]


def test_record_is_idempotent_per_path(store: StateStore) -> None:
    """Test that recording twice keeps only the latest outcome."""
    store.record_processed_file("a", FileOutcome(status=RecordStatus.FAILED, error="busy"))
    store.record_processed_file("a", FileOutcome(status=RecordStatus.SUCCESS))

    assert len(store.processed) == 1
    assert store.processed["a"].status is RecordStatus.SUCCESS
    assert store.processed["a"].error is None


def test_save_is_atomic_and_keeps_started_at(store: StateStore, tmp_path: Path) -> None:
    """Test that saves replace the file in place and leave no temporary files."""
    first = store.save(StateSnapshot(total=1))
    second = store.save(StateSnapshot(total=1, started_at=first["startedAt"]))

    assert second["startedAt"] == first["startedAt"]
    assert sorted(path.name for path in tmp_path.iterdir()) == ["state.json"]


def test_load_missing_state_returns_none(store: StateStore) -> None:
    """Test that a missing state file is not an error."""
    assert store.load() is None


def test_load_ignores_version_mismatch(store: StateStore, caplog) -> None:
    """Test that a state written by another format version is discarded with a warning."""
    store.state_path.write_text(
        json.dumps({"version": "0.9", "files": {"processed": {"a": {"status": "success"}}}}), encoding="utf-8"
    )

    with caplog.at_level(logging.WARNING):
        assert store.load() is None

    assert "version mismatch" in caplog.text
    assert store.processed == {}


def test_load_ignores_corrupt_json(store: StateStore, caplog) -> None:
    """Test that a truncated state file is discarded with a warning."""
    store.state_path.write_text('{"version": "1.0", "files": {', encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        assert store.load() is None

    assert "Failed to load state" in caplog.text


@pytest.mark.parametrize("files", [["original/a.jpg"], "original/a.jpg", {"processed": ["original/a.jpg"]}])
def test_load_ignores_malformed_files_section(store: StateStore, caplog, files: object) -> None:
    """Test that a files section of the wrong shape is discarded with a warning."""
    store.state_path.write_text(json.dumps({"version": "1.0", "files": files}), encoding="utf-8")

    with caplog.at_level(logging.WARNING):
        assert store.load() is None

    assert "Malformed state" in caplog.text
    assert store.processed == {}


def test_clear_removes_state(store: StateStore) -> None:
    """Test that clearing deletes the file and the in-memory outcomes."""
    store.record_processed_file("a", FileOutcome(status=RecordStatus.SUCCESS))
    store.save(StateSnapshot(total=1))

    assert store.clear()
    assert not store.state_path.exists()
    assert store.processed == {}
    assert not store.clear()


def test_generate_report(store: StateStore) -> None:
    """Test the summary counts, success rate and logged errors."""
    store.record_processed_file("a", FileOutcome(status=RecordStatus.SUCCESS))
    store.record_processed_file("b", FileOutcome(status=RecordStatus.SUCCESS))
    store.record_processed_file("c", FileOutcome(status=RecordStatus.FAILED, error="corrupt"))
    store.error_log.append("c", ProcessingError("corrupt"), {"attempt": 1})

    report = store.generate_report()

    assert report["summary"] == {"total": 3, "succeeded": 2, "failed": 1, "successRate": "66.7%"}
    assert [entry["file"] for entry in report["errors"]] == ["c"]
    assert report["errorLogPath"] == str(store.error_log.log_path)


def test_generate_report_without_outcomes(store: StateStore) -> None:
    """Test that an empty store reports a zero success rate."""
    report = store.generate_report()

    assert report["summary"]["successRate"] == "0%"
    assert report["errors"] == []
