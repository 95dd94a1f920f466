"""Pillow integration for image transcoding."""

from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING, Any, ClassVar

from PIL import Image, ImageOps, UnidentifiedImageError

from .base import ErrorKind, OutputResult, ProcessingError, classify_error

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from .base import OutputSpec

LOG = logging.getLogger(__name__)


class TranscodeError(ProcessingError):
    """Pillow-specific error."""


class ImageTranscoder:
    """Writes resized, re-encoded copies of an image with Pillow."""

    PIL_FORMATS: ClassVar[dict[str, str]] = {
        "webp": "WEBP",
        "avif": "AVIF",
        "jpeg": "JPEG",
        "png": "PNG",
    }

    def __init__(self, *, preserve_metadata: bool = False) -> None:
        self.preserve_metadata = preserve_metadata

    @staticmethod
    def probe_width(file_path: Path) -> int | None:
        """Read the pixel width from the image header."""
        try:
            with Image.open(file_path) as img:
                return img.size[0]
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
            LOG.warning("Could not read dimensions of %s: %s", file_path, e)
            return None

    @staticmethod
    def _open(file_path: Path) -> Image.Image:
        try:
            img = Image.open(file_path)
            img.load()
        except UnidentifiedImageError as e:
            msg = f"Unsupported or corrupt image: {file_path}"
            raise TranscodeError(msg, file_path=file_path, cause=e, kind=ErrorKind.INVALID_INPUT) from e
        except Image.DecompressionBombError as e:
            msg = f"Image too large to decode: {file_path}: {e}"
            raise TranscodeError(msg, file_path=file_path, cause=e, kind=ErrorKind.INVALID_INPUT) from e
        except OSError as e:
            kind = classify_error(e)
            if kind is ErrorKind.UNKNOWN:
                kind = ErrorKind.UNREADABLE
            msg = f"Cannot read {file_path}: {e}"
            raise TranscodeError(msg, file_path=file_path, cause=e, kind=kind) from e
        return img

    def transcode(self, input_path: Path, specs: Sequence[OutputSpec]) -> list[OutputResult]:
        """
        Produce every requested output.

        Only an unreadable input raises; failures of individual outputs are
        reported in the returned results.
        """
        if all(spec.format == "copy" for spec in specs):
            return [self._copy(input_path, spec) for spec in specs]

        source = self._open(input_path)
        try:
            exif = source.info.get("exif") if self.preserve_metadata else None
            image = ImageOps.exif_transpose(source)
            results = []
            for spec in specs:
                if spec.format == "copy":
                    results.append(self._copy(input_path, spec))
                else:
                    results.append(self._encode(image, spec, exif))
        finally:
            source.close()
        return results

    def _copy(self, input_path: Path, spec: OutputSpec) -> OutputResult:
        try:
            spec.output_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(input_path, spec.output_path)
        except OSError as e:
            return OutputResult(path=spec.output_path, succeeded=False, error_message=str(e), kind=classify_error(e))
        LOG.debug("Copied %s -> %s", input_path, spec.output_path)
        return OutputResult(path=spec.output_path, succeeded=True, size=spec.output_path.stat().st_size)

    def _encode(self, image: Image.Image, spec: OutputSpec, exif: bytes | None) -> OutputResult:
        pil_format = self.PIL_FORMATS.get(spec.format)
        if pil_format is None:
            return OutputResult(
                path=spec.output_path,
                succeeded=False,
                error_message=f"Unsupported output format: {spec.format}",
                kind=ErrorKind.UNSUPPORTED_FORMAT,
            )

        temp_path = spec.output_path.with_name(f".{spec.output_path.name}.tmp")
        try:
            spec.output_path.parent.mkdir(parents=True, exist_ok=True)
            frame = image.copy()
            if spec.resize:
                # Fit inside the box, never enlarge
                frame.thumbnail(spec.resize, Image.Resampling.LANCZOS)
            if pil_format == "JPEG" and frame.mode not in {"RGB", "L"}:
                frame = frame.convert("RGB")

            save_kwargs: dict[str, Any] = dict(spec.options)
            if spec.quality is not None:
                save_kwargs["quality"] = spec.quality
            if exif:
                save_kwargs["exif"] = exif

            frame.save(temp_path, format=pil_format, **save_kwargs)
            os.replace(temp_path, spec.output_path)
        except (OSError, ValueError, KeyError) as e:
            temp_path.unlink(missing_ok=True)
            kind = ErrorKind.UNSUPPORTED_FORMAT if isinstance(e, KeyError) else classify_error(e)
            LOG.warning("Failed to write %s: %s", spec.output_path, e)
            return OutputResult(path=spec.output_path, succeeded=False, error_message=str(e), kind=kind)

        LOG.debug("Wrote %s (%s, quality=%s)", spec.output_path, spec.format, spec.quality)
        return OutputResult(path=spec.output_path, succeeded=True, size=spec.output_path.stat().st_size)
