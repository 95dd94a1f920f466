"""Incremental image optimization pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol

from .base import ErrorKind, JobStatus, OutputResult, ProcessingError, ProcessingJob
from .change_detector import ChangeDetector
from .lfs import GitLfsDetector, GitLfsError, GitLfsPuller
from .output_paths import OutputPlanner
from .progress import TqdmProgress
from .quality_rules import resolve_quality, rules_need_width
from .retry import ErrorLog, RetryExecutor
from .state import FileOutcome, RecordStatus, StateSnapshot, StateStore
from .thermal import check_thermal_throttling
from .transcoder import ImageTranscoder

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ..config.settings import OptimizerConfig
    from .base import OutputSpec
    from .lfs import PullResult
    from .progress import ProgressSink

LOG = logging.getLogger(__name__)

RECORD_STATUS = {
    JobStatus.PROCESSED: RecordStatus.SUCCESS,
    JobStatus.SKIPPED: RecordStatus.SUCCESS,
    JobStatus.ERROR: RecordStatus.FAILED,
    JobStatus.LFS_ERROR: RecordStatus.FAILED,
    JobStatus.LFS_POINTER: RecordStatus.SKIPPED,
}


class Transcoder(Protocol):
    def transcode(self, input_path: Path, specs: Sequence[OutputSpec]) -> list[OutputResult]: ...

    def probe_width(self, file_path: Path) -> int | None: ...


class PointerDetector(Protocol):
    def is_pointer(self, file_path: Path) -> bool: ...


class PointerPuller(Protocol):
    def pull(self, file_path: Path) -> PullResult: ...


class OutputFailedError(ProcessingError):
    """Raised when the transcoder could not produce every requested output."""

    def __init__(self, message: str, *, results: list[OutputResult], file_path: Path, kind: ErrorKind) -> None:
        super().__init__(message, file_path=file_path, kind=kind)
        self.results = results


class BatchAbortedError(ProcessingError):
    """A fatal file error stopped the batch (continue_on_error is off)."""

    def __init__(self, message: str, *, report: BatchReport, job: ProcessingJob, cause: Exception) -> None:
        super().__init__(message, file_path=job.input_path, cause=cause)
        self.report = report
        self.job = job


@dataclass(frozen=True)
class ProcessingOptions:
    """Per-invocation switches that are not part of the stored configuration."""

    force: bool = False
    pull_lfs: bool = False
    resume: bool = False
    dry_run: bool = False


@dataclass
class PipelineDependencies:
    """Collaborators used by the pipeline."""

    transcoder: Transcoder
    lfs_detector: PointerDetector
    lfs_puller: PointerPuller
    change_detector: ChangeDetector
    error_log: ErrorLog
    state_store: StateStore
    progress: ProgressSink
    sleep: Callable[[float], None] = time.sleep
    thermal_check: Callable[[], object] | None = None

    @classmethod
    def create(cls, config: OptimizerConfig, *, quiet: bool = False) -> PipelineDependencies:
        """Wire up the production collaborators for a configuration."""
        error_log = ErrorLog(config.error_log)
        return cls(
            transcoder=ImageTranscoder(preserve_metadata=config.preserve_metadata),
            lfs_detector=GitLfsDetector(),
            lfs_puller=GitLfsPuller(),
            change_detector=ChangeDetector(),
            error_log=error_log,
            state_store=StateStore(config.state_file, error_log),
            progress=TqdmProgress(quiet=quiet),
            thermal_check=check_thermal_throttling if config.thermal_throttling else None,
        )


@dataclass
class BatchReport:
    """End-of-run summary, counted by terminal state."""

    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    lfs_pointers: int = 0
    lfs_errors: int = 0
    resumed: int = 0
    would_process: int = 0
    original_bytes: int = 0
    optimized_bytes: int = 0
    resumed_from_state: bool = False
    dry_run: bool = False
    error_log_path: Path | None = None
    failed_jobs: list[ProcessingJob] = field(default_factory=list)

    def add(self, job: ProcessingJob) -> None:
        if job.status is JobStatus.PROCESSED:
            self.processed += 1
            if job.input_size is not None:
                self.original_bytes += job.input_size
                main_output = next((o for o in job.outputs if o.succeeded and o.size is not None), None)
                if main_output is not None:
                    self.optimized_bytes += main_output.size or 0
        elif job.status is JobStatus.SKIPPED:
            self.skipped += 1
        elif job.status is JobStatus.ERROR:
            self.errors += 1
            self.failed_jobs.append(job)
        elif job.status is JobStatus.LFS_POINTER:
            self.lfs_pointers += 1
        elif job.status is JobStatus.LFS_ERROR:
            self.lfs_errors += 1
            self.failed_jobs.append(job)
        else:
            self.would_process += 1

    @property
    def has_errors(self) -> bool:
        return self.errors > 0 or self.lfs_errors > 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": self.errors,
            "lfs_pointers": self.lfs_pointers,
            "lfs_errors": self.lfs_errors,
            "resumed": self.resumed,
            "would_process": self.would_process,
            "error_log_path": str(self.error_log_path) if self.error_log_path else None,
        }


def discover_images(input_dir: Path, extensions: Sequence[str], exclude: Path | None = None) -> list[Path]:
    """Find all images below input_dir in a stable order."""
    suffixes = {ext.lower() for ext in extensions}
    excluded = exclude.resolve() if exclude is not None else None

    files = []
    for path in input_dir.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in suffixes:
            continue
        if excluded is not None and excluded in path.resolve().parents:
            continue
        files.append(path)
    return sorted(files)


class ImagePipeline:
    """Drives each discovered image through detection, transcoding and state recording."""

    def __init__(self, config: OptimizerConfig, dependencies: PipelineDependencies) -> None:
        self.config = config
        self.deps = dependencies
        self.planner = OutputPlanner(config)
        self.state_store = dependencies.state_store
        self.retry = RetryExecutor(
            config.retry,
            dependencies.error_log,
            continue_on_error=config.continue_on_error,
            sleep=dependencies.sleep,
        )
        # LFS retrieval failures are recorded per file and never abort the batch
        self.lfs_retry = RetryExecutor(
            config.retry,
            dependencies.error_log,
            continue_on_error=True,
            sleep=dependencies.sleep,
        )

    def relative_name(self, input_path: Path) -> str:
        try:
            return input_path.relative_to(self.config.input_dir).as_posix()
        except ValueError:
            return input_path.name

    @staticmethod
    def state_key(input_path: Path) -> str:
        return input_path.as_posix()

    def run(self, options: ProcessingOptions | None = None) -> BatchReport:
        """
        Process the whole input directory.

        Raises:
            ProcessingError: The input directory does not exist
            BatchAbortedError: A file failed fatally and continue_on_error is off

        """
        if options is None:
            options = ProcessingOptions()

        input_dir = self.config.input_dir
        if not input_dir.is_dir():
            msg = f"Input directory does not exist: {input_dir}"
            raise ProcessingError(msg, file_path=input_dir, kind=ErrorKind.NOT_FOUND)

        discovered = discover_images(input_dir, self.config.extensions, exclude=self.config.output_dir)
        report = BatchReport(total=len(discovered), dry_run=options.dry_run)
        LOG.info("Found %d images in %s", len(discovered), input_dir)

        started_at = None
        queue = discovered
        if options.resume:
            state = self.state_store.load()
            if state is not None:
                report.resumed_from_state = True
                started_at = state.get("startedAt")
                queue = self._resume_queue(state, discovered)
                report.resumed = len(discovered) - len(queue)
                LOG.info("Resuming from previous state: %d already done, %d to go", report.resumed, len(queue))
            else:
                LOG.info("No usable previous state, starting fresh")
                self.state_store.processed = {}
        else:
            self.state_store.processed = {}

        pending = [self.state_key(path) for path in queue]
        configuration = self.config.model_dump()

        def snapshot(done: int) -> StateSnapshot:
            return StateSnapshot(
                total=len(discovered),
                pending=pending[done:],
                configuration=configuration,
                started_at=started_at,
            )

        if not options.dry_run:
            document = self.state_store.save(snapshot(0))
            started_at = document["startedAt"]

        progress = self.deps.progress
        progress.start(len(queue))
        try:
            for index, input_path in enumerate(queue, start=1):
                job = ProcessingJob(input_path=input_path, filename=self.relative_name(input_path))
                try:
                    self.process_job(job, options)
                except Exception as e:
                    job.status = JobStatus.ERROR
                    job.error = str(e)
                    if isinstance(e, OutputFailedError):
                        job.outputs = e.results
                    report.add(job)
                    if not options.dry_run:
                        self._record(job, snapshot(index - 1))
                    report.error_log_path = self.deps.error_log.log_path
                    msg = f"Aborting batch after fatal error in {job.filename}: {e}"
                    raise BatchAbortedError(msg, report=report, job=job, cause=e) from e

                report.add(job)
                if not options.dry_run:
                    self._record(job, snapshot(index))
                progress.update(index, status=job.status.value, filename=job.filename)

                if self.deps.thermal_check is not None and job.status is JobStatus.PROCESSED:
                    self.deps.thermal_check()
        finally:
            progress.finish()

        if report.has_errors:
            report.error_log_path = self.deps.error_log.log_path
        return report

    def _resume_queue(self, state: dict[str, Any], discovered: list[Path]) -> list[Path]:
        """Saved pending queue first, then every other discovered file that has not succeeded."""
        by_key = {self.state_key(path): path for path in discovered}
        saved_pending = (state.get("files") or {}).get("pending") or []

        queue: list[Path] = []
        seen: set[str] = set()
        for key in [*saved_pending, *by_key]:
            if key in seen or key not in by_key or self.state_store.is_file_succeeded(key):
                continue
            seen.add(key)
            queue.append(by_key[key])
        return queue

    def _record(self, job: ProcessingJob, snapshot: StateSnapshot) -> None:
        outcome = FileOutcome(
            status=RECORD_STATUS[job.status],
            error=job.error,
            outputs=[output.to_dict() for output in job.outputs],
        )
        self.state_store.record_processed_file(self.state_key(job.input_path), outcome)
        self.state_store.save(snapshot)

    def process_job(self, job: ProcessingJob, options: ProcessingOptions) -> ProcessingJob:
        """
        Run one file to a terminal state.

        In dry-run mode files that would be transcoded are left pending.
        """
        if self.deps.lfs_detector.is_pointer(job.input_path) and not self._handle_lfs_pointer(job, options):
            return job

        relative = PurePosixPath(job.filename)
        expected = self.planner.expected_outputs(relative)
        try:
            needs_processing = self.deps.change_detector.should_process(job.input_path, expected, options.force)
        except ProcessingError as e:
            return self._fail_without_retry(job, e, "change_check")

        if not needs_processing:
            LOG.info("Skipping %s (already up to date)", job.filename)
            job.status = JobStatus.SKIPPED
            return job

        try:
            quality = self.resolve_quality(job)
            specs = self.planner.plan(relative, quality)
        except Exception as e:
            return self._fail_without_retry(job, e, "plan")

        if options.dry_run:
            LOG.info("Would optimize %s into %d output(s)", job.filename, len(specs))
            return job

        outcome = self.retry.run(
            lambda: self._transcode(job, specs),
            {"file": job.filename, "stage": "transcode", "outputs": len(specs)},
        )
        job.attempts = outcome.attempts
        if outcome.success:
            job.outputs = outcome.result or []
            job.status = JobStatus.PROCESSED
            job.input_size = _file_size(job.input_path)
            LOG.info("Optimized %s", job.filename)
        else:
            job.status = JobStatus.ERROR
            job.error = str(outcome.error)
            if isinstance(outcome.error, OutputFailedError):
                job.outputs = outcome.error.results
        return job

    def _fail_without_retry(self, job: ProcessingJob, error: Exception, stage: str) -> ProcessingJob:
        """Audit-log a non-retryable failure and apply the continue/abort policy."""
        outcome = self.retry.record_failure(error, {"file": job.filename, "stage": stage, "attempt": 1})
        job.attempts = outcome.attempts
        job.status = JobStatus.ERROR
        job.error = str(error)
        return job

    def _handle_lfs_pointer(self, job: ProcessingJob, options: ProcessingOptions) -> bool:
        """Resolve an LFS pointer; returns True when processing may continue."""
        if not options.pull_lfs:
            LOG.warning(
                "Skipping %s (Git LFS pointer file - use --pull-lfs flag or run 'git lfs pull')", job.filename
            )
            job.status = JobStatus.LFS_POINTER
            return False

        if options.dry_run:
            LOG.info("Would pull LFS file: %s", job.filename)
            job.status = JobStatus.LFS_POINTER
            return False

        LOG.info("Pulling LFS file: %s", job.filename)
        outcome = self.lfs_retry.run(lambda: self._pull(job.input_path), {"file": job.filename, "stage": "lfs_pull"})
        job.attempts = outcome.attempts
        if not outcome.success:
            job.status = JobStatus.LFS_ERROR
            job.error = str(outcome.error)
            return False
        return True

    def _pull(self, input_path: Path) -> None:
        result = self.deps.lfs_puller.pull(input_path)
        if not result.success:
            raise GitLfsError(
                result.error or "git lfs pull failed",
                file_path=input_path,
                kind=result.kind or ErrorKind.LFS_RETRIEVAL,
            )
        if self.deps.lfs_detector.is_pointer(input_path):
            msg = f"Still an LFS pointer after pull: {input_path}"
            raise GitLfsError(msg, file_path=input_path)

    def resolve_quality(self, job: ProcessingJob) -> dict[str, int]:
        rules = self.config.quality_rules
        width = self.deps.transcoder.probe_width(job.input_path) if rules_need_width(rules) else None
        relative = PurePosixPath(job.filename)
        relative_dir = "" if str(relative.parent) == "." else relative.parent.as_posix()
        return resolve_quality(relative, relative_dir, width, self.config.quality, rules)

    def _transcode(self, job: ProcessingJob, specs: list[OutputSpec]) -> list[OutputResult]:
        results = self.deps.transcoder.transcode(job.input_path, specs)
        failed = [result for result in results if not result.succeeded]
        if not failed:
            return results

        # Retry only when every failure is transient
        kinds = [result.kind or ErrorKind.UNKNOWN for result in failed]
        kind = next((k for k in kinds if not k.retryable), kinds[0])
        details = "; ".join(f"{result.path.name}: {result.error_message}" for result in failed)
        msg = f"{len(failed)} of {len(results)} outputs failed for {job.filename}: {details}"
        raise OutputFailedError(msg, results=results, file_path=job.input_path, kind=kind)


def _file_size(path: Path) -> int | None:
    try:
        return path.stat().st_size
    except OSError:
        return None
