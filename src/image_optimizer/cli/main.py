"""Main CLI interface for the image optimizer."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from ..config import ConfigError, OptimizerConfig, load_config
from ..config.constants import VERBOSE_LOGGING_THRESHOLD
from .commands import OptimizeCommands, StateCommands, UtilityCommands


class ImageOptimizerCLI:
    """Main CLI interface."""

    def __init__(self) -> None:
        self.optimize_commands = OptimizeCommands()
        self.state_commands = StateCommands()
        self.utility_commands = UtilityCommands()

    @staticmethod
    def setup_logging(verbosity: int) -> None:
        """Setup logging based on verbosity level."""
        level_map = {
            0: logging.WARNING,
            1: logging.INFO,
            2: logging.DEBUG,
        }

        level = level_map.get(verbosity, logging.DEBUG)

        log_format = (
            "%(levelname)s: %(name)s: %(message)s"
            if verbosity >= VERBOSE_LOGGING_THRESHOLD
            else "%(levelname)s: %(message)s"
        )

        logging.basicConfig(level=level, format=log_format, handlers=[logging.StreamHandler(sys.stderr)])

        # Pillow plugin loading is noisy at debug level
        if verbosity < 3:
            logging.getLogger("PIL").setLevel(logging.WARNING)

    def build_parser(self) -> argparse.ArgumentParser:
        """Build the argument parser."""
        parser = argparse.ArgumentParser(
            prog="image-optimizer",
            description="Incremental, resumable batch image optimization",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Optimize everything in ./original into ./optimized
  image-optimizer optimize

  # Keep going past broken images, then pick up where a run stopped
  image-optimizer optimize --continue-on-error
  image-optimizer optimize --resume

  # Regenerate every output and fetch Git LFS pointer files first
  image-optimizer optimize --force --pull-lfs

  # Inspect or discard the saved run state
  image-optimizer state report
  image-optimizer state clear
            """,
        )

        # Global options
        parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="Increase verbosity (-v for info, -vv for debug)",
        )
        parser.add_argument("--config", type=Path, help="Path to configuration file (default: ./.imagerc)")

        subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")

        optimize_parser = subparsers.add_parser("optimize", help="Optimize images")
        self.optimize_commands.add_arguments(optimize_parser)

        state_parser = subparsers.add_parser("state", help="Inspect or clear the saved run state")
        self.state_commands.add_subcommands(state_parser)

        subparsers.add_parser("info", help="Show configuration and codec support")

        return parser

    @staticmethod
    def create_overrides(args: argparse.Namespace) -> dict[str, Any]:
        """Collect configuration overrides from CLI arguments."""
        retry: dict[str, Any] = {}
        if getattr(args, "max_retries", None) is not None:
            retry["max_retries"] = args.max_retries
        if getattr(args, "retry_delay", None) is not None:
            retry["base_delay_ms"] = args.retry_delay
        if getattr(args, "no_backoff", False):
            retry["exponential_backoff"] = False

        overrides: dict[str, Any] = {
            "input_dir": getattr(args, "input_dir", None),
            "output_dir": getattr(args, "output_dir", None),
            "formats": getattr(args, "formats", None),
            "continue_on_error": True if getattr(args, "continue_on_error", False) else None,
            "state_file": getattr(args, "state_file", None),
            "error_log": getattr(args, "error_log", None),
        }
        if retry:
            overrides["retry"] = retry
        return {key: value for key, value in overrides.items() if value is not None}

    def load_config(self, args: argparse.Namespace) -> OptimizerConfig:
        """Build the run configuration once from file and CLI arguments."""
        overrides = self.create_overrides(args)
        return load_config(project_root=Path.cwd(), overrides=overrides, config_path=args.config)

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.build_parser()
        parsed_args = parser.parse_args(args)

        self.setup_logging(parsed_args.verbose)
        logger = logging.getLogger(__name__)

        try:
            config = self.load_config(parsed_args)
        except (ConfigError, OSError) as e:
            logger.error("Invalid configuration: %s", e)
            return 1

        if parsed_args.verbose == 0:
            logging.getLogger().setLevel(config.log_level)

        try:
            if parsed_args.command == "optimize":
                return self.optimize_commands.handle_command(parsed_args, config)
            if parsed_args.command == "state":
                return self.state_commands.handle_command(parsed_args, config)
            if parsed_args.command == "info":
                return self.utility_commands.handle_info(config)
            parser.error(f"Unknown command: {parsed_args.command}")

        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user; completed files are saved in the run state")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            logger.exception(f"Unexpected error: {e}")
            return 1

        return 0


def main() -> int:
    """Entry point for the CLI."""
    cli = ImageOptimizerCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
