"""Configuration management for the image optimizer."""

from __future__ import annotations

from .constants import *  # noqa: F403, F401
from .settings import ConfigError, OptimizerConfig, QualityRule, RetryConfig, find_config_file, load_config

__all__ = [
    "ConfigError",
    "OptimizerConfig",
    "QualityRule",
    "RetryConfig",
    "find_config_file",
    "load_config",
]
