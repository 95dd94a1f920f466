"""Output path and processing configuration generation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import OutputSpec

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path, PurePath

    from ..config.settings import OptimizerConfig

JPEG_SUFFIXES = {".jpg", ".jpeg"}


class OutputPlanner:
    """Derives the outputs an input image should produce from the configuration."""

    def __init__(self, config: OptimizerConfig) -> None:
        self.config = config

    def _wants_original(self, suffix: str) -> bool:
        formats = self.config.formats
        if "original" in formats:
            return True
        if suffix == ".png" and "png" in formats:
            return True
        return suffix in JPEG_SUFFIXES and "jpeg" in formats

    def _original_suffix(self, suffix: str) -> str:
        if suffix in JPEG_SUFFIXES and "jpeg" in self.config.formats:
            return ".jpg"
        return suffix

    def plan(self, relative_path: PurePath, quality: Mapping[str, int] | None = None) -> list[OutputSpec]:
        """
        Build the ordered output specs for one input.

        Args:
            relative_path: Input path relative to the input directory
            quality: Resolved per-format quality (defaults to the configured map)

        """
        if quality is None:
            quality = self.config.quality

        target_dir: Path = self.config.output_dir / relative_path.parent
        name = relative_path.stem
        suffix = relative_path.suffix.lower()
        formats = self.config.formats
        main_box = (self.config.max_dimension, self.config.max_dimension)
        specs: list[OutputSpec] = []

        if suffix == ".gif":
            # GIFs are copied untouched
            return [OutputSpec(output_path=target_dir / relative_path.name, format="copy")]

        if suffix == ".webp":
            if "webp" in formats or "original" in formats:
                specs.append(
                    OutputSpec(
                        output_path=target_dir / relative_path.name,
                        format="webp",
                        quality=quality.get("webp"),
                        resize=main_box,
                    )
                )
        else:
            if "webp" in formats:
                specs.append(
                    OutputSpec(
                        output_path=target_dir / f"{name}.webp",
                        format="webp",
                        quality=quality.get("webp"),
                        resize=main_box,
                    )
                )
            if "avif" in formats:
                specs.append(
                    OutputSpec(
                        output_path=target_dir / f"{name}.avif",
                        format="avif",
                        quality=quality.get("avif"),
                        resize=main_box,
                    )
                )
            if self._wants_original(suffix):
                is_jpeg = suffix in JPEG_SUFFIXES
                specs.append(
                    OutputSpec(
                        output_path=target_dir / f"{name}{self._original_suffix(suffix)}",
                        format="jpeg" if is_jpeg else "png",
                        quality=quality.get("jpeg") if is_jpeg else None,
                        resize=main_box,
                        options={} if is_jpeg else {"optimize": True, "compress_level": 9},
                    )
                )

        if self.config.generate_thumbnails:
            width = self.config.thumbnail_width
            specs.append(
                OutputSpec(
                    output_path=target_dir / f"{name}-thumb.webp",
                    format="webp",
                    quality=quality.get("webp"),
                    resize=(width, width),
                )
            )

        return specs

    def expected_outputs(self, relative_path: PurePath) -> list[Path]:
        """Paths that must exist (and be fresh) for the input to count as up to date."""
        return [spec.output_path for spec in self.plan(relative_path)]
