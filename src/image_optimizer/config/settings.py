"""Configuration management for the image optimizer."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .constants import (
    CONFIG_FILE_NAMES,
    DEFAULT_ERROR_LOG,
    DEFAULT_STATE_FILE,
    LOG_LEVELS,
    MAX_QUALITY,
    MAX_THUMBNAIL_WIDTH,
    MIN_QUALITY,
    MIN_THUMBNAIL_WIDTH,
    QUALITY_FORMATS,
    VALID_FORMATS,
)

LOG = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class ConfigError(ValueError):
    """Raised when the run configuration is invalid."""


@dataclass(frozen=True)
class QualityRule:
    """Per-file quality override matched against a candidate image."""

    quality: dict[str, int] = field(default_factory=dict)
    pattern: str | None = None
    directory: str | None = None
    min_width: int | None = None
    max_width: int | None = None

    @property
    def specificity(self) -> int:
        """Number of predicates this rule declares."""
        declared = (self.pattern, self.directory, self.min_width, self.max_width)
        return sum(1 for value in declared if value is not None)

    @property
    def needs_width(self) -> bool:
        return self.min_width is not None or self.max_width is not None

    def describe(self) -> str:
        """Human readable list of the rule's criteria."""
        parts = []
        if self.pattern is not None:
            parts.append(f"pattern: {self.pattern}")
        if self.directory is not None:
            parts.append(f"directory: {self.directory}")
        if self.min_width is not None:
            parts.append(f"minWidth: {self.min_width}")
        if self.max_width is not None:
            parts.append(f"maxWidth: {self.max_width}")
        return ", ".join(parts)

    def model_dump(self) -> dict[str, Any]:
        data: dict[str, Any] = {"quality": dict(self.quality)}
        for key in ("pattern", "directory", "min_width", "max_width"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class RetryConfig:
    """Retry envelope settings."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    exponential_backoff: bool = True


@dataclass(frozen=True)
class OptimizerConfig:
    """Resolved configuration for one optimization run."""

    input_dir: Path = Path("original")
    output_dir: Path = Path("optimized")
    formats: tuple[str, ...] = ("webp", "avif", "original")
    quality: dict[str, int] = field(default_factory=lambda: {"webp": 80, "avif": 80, "jpeg": 80})
    quality_rules: tuple[QualityRule, ...] = ()
    generate_thumbnails: bool = True
    thumbnail_width: int = 200
    max_dimension: int = 2000
    preserve_metadata: bool = False
    extensions: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".gif", ".webp")
    retry: RetryConfig = field(default_factory=RetryConfig)
    continue_on_error: bool = False
    state_file: Path = Path(DEFAULT_STATE_FILE)
    error_log: Path = Path(DEFAULT_ERROR_LOG)
    log_level: str = "WARNING"
    thermal_throttling: bool = True

    @classmethod
    def load_from_file(cls, config_path: Path, overrides: dict[str, Any] | None = None) -> OptimizerConfig:
        """Load configuration from a YAML or JSON file, then apply overrides."""
        data = _read_config_file(config_path)
        return cls.from_sources(data, overrides or {})

    @classmethod
    def from_sources(cls, file_data: dict[str, Any], overrides: dict[str, Any]) -> OptimizerConfig:
        """Merge defaults < file data < overrides and validate the result."""
        merged = merge_configs(cls().model_dump(), normalize_keys(file_data), normalize_keys(overrides))
        return cls._from_dict(merged)

    def model_dump(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of the configuration."""
        return {
            "input_dir": str(self.input_dir),
            "output_dir": str(self.output_dir),
            "formats": list(self.formats),
            "quality": dict(self.quality),
            "quality_rules": [rule.model_dump() for rule in self.quality_rules],
            "generate_thumbnails": self.generate_thumbnails,
            "thumbnail_width": self.thumbnail_width,
            "max_dimension": self.max_dimension,
            "preserve_metadata": self.preserve_metadata,
            "extensions": list(self.extensions),
            "retry": {
                "max_retries": self.retry.max_retries,
                "base_delay_ms": self.retry.base_delay_ms,
                "exponential_backoff": self.retry.exponential_backoff,
            },
            "continue_on_error": self.continue_on_error,
            "state_file": str(self.state_file),
            "error_log": str(self.error_log),
            "log_level": self.log_level,
            "thermal_throttling": self.thermal_throttling,
        }

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> OptimizerConfig:
        """Create config from a fully merged dictionary."""
        validate_config(data)

        return cls(
            input_dir=Path(data["input_dir"]),
            output_dir=Path(data["output_dir"]),
            formats=tuple(data["formats"]),
            quality=dict(data["quality"]),
            quality_rules=cls._parse_quality_rules(data.get("quality_rules") or []),
            generate_thumbnails=bool(data["generate_thumbnails"]),
            thumbnail_width=int(data["thumbnail_width"]),
            max_dimension=int(data["max_dimension"]),
            preserve_metadata=bool(data["preserve_metadata"]),
            extensions=tuple(ext.lower() for ext in data["extensions"]),
            retry=cls._parse_retry_config(data.get("retry") or {}),
            continue_on_error=bool(data["continue_on_error"]),
            state_file=Path(data["state_file"]),
            error_log=Path(data["error_log"]),
            log_level=str(data["log_level"]).upper(),
            thermal_throttling=bool(data["thermal_throttling"]),
        )

    @classmethod
    def _parse_quality_rules(cls, rules_data: list[Any]) -> tuple[QualityRule, ...]:
        """Parse the ordered list of quality rules."""
        rules = []
        for index, rule_data in enumerate(rules_data):
            if not isinstance(rule_data, dict):
                msg = f"Quality rule #{index + 1} must be a mapping"
                raise ConfigError(msg)
            rule_data = normalize_keys(rule_data)
            quality = rule_data.get("quality") or {}
            if not isinstance(quality, dict):
                msg = f"Quality rule #{index + 1}: quality must be a mapping of format to value"
                raise ConfigError(msg)
            _validate_quality_map(quality, f"quality rule #{index + 1}")

            for key in ("pattern", "directory"):
                value = rule_data.get(key)
                if value is not None and not isinstance(value, str):
                    msg = f"Quality rule #{index + 1}: {key} must be a string"
                    raise ConfigError(msg)
            for key, label in (("min_width", "minWidth"), ("max_width", "maxWidth")):
                value = rule_data.get(key)
                if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                    msg = f"Quality rule #{index + 1}: {label} must be an integer"
                    raise ConfigError(msg)

            rule = QualityRule(
                quality=dict(quality),
                pattern=rule_data.get("pattern"),
                directory=rule_data.get("directory"),
                min_width=rule_data.get("min_width"),
                max_width=rule_data.get("max_width"),
            )
            if rule.specificity == 0:
                LOG.warning("Quality rule #%d declares no match criteria and will never apply", index + 1)
            if rule.min_width is not None and rule.max_width is not None and rule.min_width > rule.max_width:
                msg = f"Quality rule #{index + 1}: minWidth must not exceed maxWidth"
                raise ConfigError(msg)
            rules.append(rule)
        return tuple(rules)

    @classmethod
    def _parse_retry_config(cls, retry_data: dict[str, Any]) -> RetryConfig:
        """Parse retry settings."""
        max_retries = int(retry_data.get("max_retries", 3))
        base_delay_ms = int(retry_data.get("base_delay_ms", 1000))
        if max_retries < 1:
            msg = "max_retries must be at least 1"
            raise ConfigError(msg)
        if base_delay_ms < 0:
            msg = "base_delay_ms must not be negative"
            raise ConfigError(msg)
        return RetryConfig(
            max_retries=max_retries,
            base_delay_ms=base_delay_ms,
            exponential_backoff=bool(retry_data.get("exponential_backoff", True)),
        )


def _read_config_file(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Invalid configuration in {config_path.name}: {e}"
        raise ConfigError(msg) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Configuration in {config_path.name} must be a mapping"
        raise ConfigError(msg)
    return data


def find_config_file(project_root: Path) -> Path | None:
    """Return the first config file found in the project root."""
    for name in CONFIG_FILE_NAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(
    project_root: Path | None = None,
    overrides: dict[str, Any] | None = None,
    config_path: Path | None = None,
) -> OptimizerConfig:
    """
    Build the run configuration.

    Args:
        project_root: Directory searched for an .imagerc file (defaults to cwd)
        overrides: Values from the command line, applied last
        config_path: Explicit config file, skips discovery

    """
    if config_path is None:
        config_path = find_config_file(project_root or Path.cwd())

    file_data: dict[str, Any] = {}
    if config_path is not None:
        try:
            file_data = _read_config_file(config_path)
        except OSError as e:
            LOG.warning("Failed to read config from %s: %s", config_path, e)
        else:
            LOG.debug("Loaded configuration from %s", config_path)

    return OptimizerConfig.from_sources(file_data, overrides or {})


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Convert camelCase keys (qualityRules, retry.maxRetries) to snake_case."""
    normalized = {_CAMEL_RE.sub("_", key).lower(): value for key, value in data.items()}
    if isinstance(normalized.get("retry"), dict):
        normalized["retry"] = normalize_keys(normalized["retry"])
    return normalized


def merge_configs(defaults: dict[str, Any], *layers: dict[str, Any]) -> dict[str, Any]:
    """Merge configuration layers; nested quality/retry mappings merge key-wise."""
    merged = dict(defaults)
    for layer in layers:
        for key, value in layer.items():
            if value is None:
                continue
            if key in {"quality", "retry"} and isinstance(value, dict):
                merged[key] = {**(merged.get(key) or {}), **value}
            else:
                merged[key] = value
    return merged


def _validate_quality_map(quality: dict[str, Any], where: str) -> None:
    for fmt, value in quality.items():
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_QUALITY <= value <= MAX_QUALITY:
            msg = f"Quality for {fmt} in {where} must be between {MIN_QUALITY} and {MAX_QUALITY}"
            raise ConfigError(msg)


def validate_config(config: dict[str, Any]) -> None:
    """Validate a merged configuration dictionary."""
    formats = config.get("formats")
    if not isinstance(formats, (list, tuple)):
        msg = "formats must be an array"
        raise ConfigError(msg)
    if not formats:
        msg = "At least one output format must be specified"
        raise ConfigError(msg)
    for fmt in formats:
        if fmt not in VALID_FORMATS:
            msg = f"Invalid format: {fmt}. Valid formats are: {', '.join(VALID_FORMATS)}"
            raise ConfigError(msg)

    quality = config.get("quality")
    if not isinstance(quality, dict):
        msg = "quality must be a mapping of format to value"
        raise ConfigError(msg)
    for fmt in QUALITY_FORMATS:
        if fmt in quality:
            value = quality[fmt]
            if isinstance(value, bool) or not isinstance(value, int) or not MIN_QUALITY <= value <= MAX_QUALITY:
                msg = f"Quality for {fmt} must be between {MIN_QUALITY} and {MAX_QUALITY}"
                raise ConfigError(msg)

    width = config.get("thumbnail_width")
    if isinstance(width, bool) or not isinstance(width, int) or not MIN_THUMBNAIL_WIDTH <= width <= MAX_THUMBNAIL_WIDTH:
        msg = f"Thumbnail width must be between {MIN_THUMBNAIL_WIDTH} and {MAX_THUMBNAIL_WIDTH}"
        raise ConfigError(msg)

    output_dir = config.get("output_dir")
    if not isinstance(output_dir, (str, Path)) or not str(output_dir).strip():
        msg = "Output directory cannot be empty"
        raise ConfigError(msg)

    max_dimension = config.get("max_dimension")
    if isinstance(max_dimension, bool) or not isinstance(max_dimension, int) or max_dimension < 1:
        msg = "max_dimension must be a positive integer"
        raise ConfigError(msg)

    log_level = str(config.get("log_level", "")).upper()
    if log_level not in LOG_LEVELS:
        msg = f"Invalid log level: {config.get('log_level')}. Valid levels are: {', '.join(LOG_LEVELS)}"
        raise ConfigError(msg)
