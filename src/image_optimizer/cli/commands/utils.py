"""Utility CLI commands."""

from __future__ import annotations

import logging
import shutil
from typing import TYPE_CHECKING

from PIL import __version__ as pillow_version
from PIL import features

if TYPE_CHECKING:
    from ...config import OptimizerConfig

LOG = logging.getLogger(__name__)

CODEC_FEATURES = {"webp": "webp", "avif": "avif"}


def codec_support() -> dict[str, bool]:
    """Which optional Pillow codecs are available in this build."""
    # Unknown feature names only warn and report False
    return {name: bool(features.check(feature)) for name, feature in CODEC_FEATURES.items()}


class UtilityCommands:
    """Utility command handlers."""

    def handle_info(self, config: OptimizerConfig) -> int:
        """Show the effective configuration and encoder availability."""
        print("Configuration:")
        print(f"  Input directory:  {config.input_dir}")
        print(f"  Output directory: {config.output_dir}")
        print(f"  Formats:          {', '.join(config.formats)}")
        print(f"  Quality:          {', '.join(f'{k}={v}' for k, v in config.quality.items())}")
        print(f"  Quality rules:    {len(config.quality_rules)}")
        for rule in config.quality_rules:
            print(f"    - {rule.describe()} -> {rule.quality}")
        thumbnails = f"{config.thumbnail_width}px" if config.generate_thumbnails else "disabled"
        print(f"  Thumbnails:       {thumbnails}")
        print(f"  Max dimension:    {config.max_dimension}px")
        retry = config.retry
        backoff = "exponential" if retry.exponential_backoff else "constant"
        print(f"  Retries:          {retry.max_retries} attempts, {retry.base_delay_ms}ms {backoff} delay")
        print(f"  State file:       {config.state_file}")
        print(f"  Error log:        {config.error_log}")

        print(f"\nPillow {pillow_version}:")
        missing = []
        for name, available in codec_support().items():
            print(f"  {name}: {'✓ available' if available else '✗ missing'}")
            if not available and name in config.formats:
                missing.append(name)

        git_path = shutil.which("git")
        print(f"\ngit: {'✓ ' + git_path if git_path else '✗ not found (LFS pulls unavailable)'}")

        if missing:
            LOG.warning("Configured formats not supported by this Pillow build: %s", ", ".join(missing))
        return 0
