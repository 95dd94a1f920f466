"""Image optimization CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ...config.constants import VALID_FORMATS
from ...core import (
    BatchAbortedError,
    ImagePipeline,
    PipelineDependencies,
    ProcessingError,
    ProcessingOptions,
)
from ..failure_table import print_failure_table

if TYPE_CHECKING:
    import argparse

    from ...config import OptimizerConfig
    from ...core import BatchReport

LOG = logging.getLogger(__name__)

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_bytes(size: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {SIZE_UNITS[index]}"


class OptimizeCommands:
    """Optimize command handler."""

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Add optimize arguments to parser."""
        parser.add_argument(
            "input_dir",
            nargs="?",
            type=Path,
            help="Directory with source images (default: input_dir from config)",
        )
        parser.add_argument("--output-dir", "-o", type=Path, help="Directory for optimized images")
        parser.add_argument("--force", "-f", action="store_true", help="Regenerate outputs even when up to date")
        parser.add_argument(
            "--pull-lfs", action="store_true", help="Download Git LFS pointer files before processing"
        )
        parser.add_argument(
            "--continue-on-error",
            action="store_true",
            help="Record failures and keep going instead of stopping at the first fatal error",
        )
        parser.add_argument("--resume", action="store_true", help="Resume from the saved run state")
        parser.add_argument(
            "--dry-run", "-n", action="store_true", help="Show what would be done without writing anything"
        )
        parser.add_argument("--quiet", "-q", action="store_true", help="Hide the progress bar and summary")
        parser.add_argument("--max-retries", type=int, help="Attempts per file for transient errors")
        parser.add_argument("--retry-delay", type=int, help="Base retry delay in milliseconds")
        parser.add_argument("--no-backoff", action="store_true", help="Use a constant retry delay")
        parser.add_argument(
            "--formats",
            nargs="+",
            type=str.lower,
            choices=VALID_FORMATS,
            help="Output formats to generate",
        )
        parser.add_argument("--state-file", type=Path, help="Path of the resumable state file")
        parser.add_argument("--error-log", type=Path, help="Path of the error audit log")

    def handle_command(self, args: argparse.Namespace, config: OptimizerConfig) -> int:
        """Handle optimize command execution."""
        options = ProcessingOptions(
            force=args.force,
            pull_lfs=args.pull_lfs,
            resume=args.resume,
            dry_run=args.dry_run,
        )
        dependencies = PipelineDependencies.create(config, quiet=args.quiet)
        pipeline = ImagePipeline(config, dependencies)

        if not args.quiet:
            self._print_banner(config, options)

        try:
            report = pipeline.run(options)
        except BatchAbortedError as e:
            LOG.error("%s", e)
            if not args.quiet:
                self._print_summary(e.report)
                print("Batch stopped early; use --continue-on-error to keep going or --resume to pick up later")
            return 1
        except ProcessingError as e:
            LOG.error("%s", e)
            return 1

        if not args.quiet:
            self._print_summary(report)

        return 1 if report.has_errors else 0

    @staticmethod
    def _print_banner(config: OptimizerConfig, options: ProcessingOptions) -> None:
        print(f"Optimizing images from {config.input_dir} into {config.output_dir}")
        if options.force:
            print("Force reprocessing enabled - all images will be regenerated")
        if options.pull_lfs:
            print("Git LFS auto-pull enabled - pointer files will be downloaded")
        if options.dry_run:
            print("Dry run - no files or state will be written")

    @staticmethod
    def _print_summary(report: BatchReport) -> None:
        if report.total == 0:
            print("No images found in the input directory")
            return

        print("\n" + "=" * 50)
        if report.resumed_from_state:
            print(f"Resuming from previous state ({report.resumed} files already done)")
        print("✅ Optimization complete!" if not report.dry_run else "🔍 Dry run complete!")
        if report.dry_run:
            print(f"   Would process: {report.would_process} images")
        else:
            print(f"   Processed: {report.processed} images")
        print(f"   Skipped: {report.skipped} images (already up to date)")
        if report.lfs_pointers:
            print(f"   Git LFS pointers: {report.lfs_pointers} files (use --pull-lfs flag)")
        if report.lfs_errors:
            print(f"   Git LFS errors: {report.lfs_errors} files")
        if report.errors:
            print(f"   Errors: {report.errors} images")

        if report.processed and report.original_bytes:
            saved = report.original_bytes - report.optimized_bytes
            percent = saved / report.original_bytes * 100
            print("\n📊 Size Statistics:")
            print(f"   Original size: {format_bytes(report.original_bytes)}")
            print(f"   Optimized size: {format_bytes(report.optimized_bytes)}")
            if saved > 0:
                print(f"   Space saved: {format_bytes(saved)} ({percent:.1f}%)")
            else:
                print(f"   Size increased: {format_bytes(-saved)} (+{-percent:.1f}%)")

        print("=" * 50)

        if report.failed_jobs:
            print_failure_table(report.failed_jobs)
        if report.error_log_path is not None:
            print(f"Error details written to {report.error_log_path}")
