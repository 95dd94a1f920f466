"""Image Optimizer - incremental, resumable batch image optimization."""

from __future__ import annotations

__version__ = "0.1.0"
__description__ = "Incremental, resumable batch image optimization"

# Public API exports
from .config import ConfigError, OptimizerConfig, QualityRule, RetryConfig, load_config
from .core import (
    BatchAbortedError,
    BatchReport,
    ErrorKind,
    ImagePipeline,
    JobStatus,
    PipelineDependencies,
    ProcessingError,
    ProcessingOptions,
    StateStore,
)

__all__ = [
    # Configuration
    "OptimizerConfig",
    "QualityRule",
    "RetryConfig",
    "load_config",
    # Pipeline
    "ImagePipeline",
    "PipelineDependencies",
    "ProcessingOptions",
    "BatchReport",
    "StateStore",
    # Enums
    "ErrorKind",
    "JobStatus",
    # Exceptions
    "BatchAbortedError",
    "ConfigError",
    "ProcessingError",
]
