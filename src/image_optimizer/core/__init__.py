"""Core abstractions and utilities for the image optimizer."""

from .base import ErrorKind, JobStatus, OutputResult, OutputSpec, ProcessingError, ProcessingJob, classify_error
from .change_detector import ChangeDetector, FileTimestamps
from .lfs import GitLfsDetector, GitLfsError, GitLfsPuller, PullResult
from .output_paths import OutputPlanner
from .pipeline import (
    BatchAbortedError,
    BatchReport,
    ImagePipeline,
    OutputFailedError,
    PipelineDependencies,
    ProcessingOptions,
    discover_images,
)
from .progress import NullProgress, TqdmProgress
from .quality_rules import resolve_quality
from .retry import ErrorLog, RetryExecutor, RetryOutcome
from .state import FileOutcome, RecordStatus, StateSnapshot, StateStore
from .transcoder import ImageTranscoder, TranscodeError

__all__ = [
    "BatchAbortedError",
    "BatchReport",
    "ChangeDetector",
    "ErrorKind",
    "ErrorLog",
    "FileOutcome",
    "FileTimestamps",
    "GitLfsDetector",
    "GitLfsError",
    "GitLfsPuller",
    "ImagePipeline",
    "ImageTranscoder",
    "JobStatus",
    "NullProgress",
    "OutputFailedError",
    "OutputPlanner",
    "OutputResult",
    "OutputSpec",
    "PipelineDependencies",
    "ProcessingError",
    "ProcessingJob",
    "ProcessingOptions",
    "PullResult",
    "RecordStatus",
    "RetryExecutor",
    "RetryOutcome",
    "StateSnapshot",
    "StateStore",
    "TqdmProgress",
    "TranscodeError",
    "classify_error",
    "resolve_quality",
]
