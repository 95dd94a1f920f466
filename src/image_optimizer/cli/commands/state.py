"""Run state CLI commands."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from ...core import ErrorLog, StateStore

if TYPE_CHECKING:
    import argparse

    from ...config import OptimizerConfig

LOG = logging.getLogger(__name__)

MAX_DISPLAYED_ERRORS = 20


class StateCommands:
    """Saved run state command handlers."""

    def add_subcommands(self, parser: argparse.ArgumentParser) -> None:
        """Add state subcommands to parser."""
        subparsers = parser.add_subparsers(dest="state_command", help="State commands")

        subparsers.add_parser("show", help="Show progress recorded in the state file")
        subparsers.add_parser("clear", help="Delete the state file")

        report_parser = subparsers.add_parser("report", help="Summarize outcomes and logged errors")
        report_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    def handle_command(self, args: argparse.Namespace, config: OptimizerConfig) -> int:
        """Handle state command execution."""
        if not hasattr(args, "state_command") or args.state_command is None:
            LOG.error("No state command specified")
            return 1

        store = StateStore(config.state_file, ErrorLog(config.error_log))
        if args.state_command == "show":
            return self._handle_show(store)
        if args.state_command == "clear":
            return self._handle_clear(store)
        if args.state_command == "report":
            return self._handle_report(store, as_json=args.json)
        LOG.error("Unknown state command: %s", args.state_command)
        return 1

    def _handle_show(self, store: StateStore) -> int:
        """Print progress and pending files from the saved state."""
        document = store.load()
        if document is None:
            print(f"No saved state at {store.state_path}")
            return 0

        progress = document.get("progress", {})
        pending = (document.get("files") or {}).get("pending") or []
        print(f"State file: {store.state_path}")
        print(f"Started: {document.get('startedAt')}")
        print(f"Last updated: {document.get('lastUpdatedAt')}")
        print(
            f"Progress: {progress.get('processed', 0)}/{progress.get('total', 0)} "
            f"({progress.get('succeeded', 0)} succeeded, {progress.get('failed', 0)} failed)"
        )
        print(f"Pending: {len(pending)} files")
        return 0

    def _handle_clear(self, store: StateStore) -> int:
        """Remove the state file."""
        try:
            removed = store.clear()
        except OSError:
            LOG.exception("Failed to remove state file %s", store.state_path)
            return 1

        if removed:
            print(f"Removed state file {store.state_path}")
        else:
            print(f"No saved state at {store.state_path}")
        return 0

    def _handle_report(self, store: StateStore, *, as_json: bool) -> int:
        """Print the success summary and the logged errors."""
        if store.load() is None:
            LOG.info("No saved state at %s, reporting on the error log only", store.state_path)

        report = store.generate_report()
        if as_json:
            print(json.dumps(report, indent=2))
            return 0

        summary = report["summary"]
        print(f"Total: {summary['total']} files")
        print(f"Succeeded: {summary['succeeded']}")
        print(f"Failed: {summary['failed']}")
        print(f"Success rate: {summary['successRate']}")

        errors = report["errors"]
        if errors:
            print(f"\nLogged errors ({len(errors)}), see {report['errorLogPath']}:")
            for entry in errors[-MAX_DISPLAYED_ERRORS:]:
                error = entry.get("error") or {}
                print(f"  [{error.get('code', 'UNKNOWN')}] {entry.get('file')}: {error.get('message')}")
        return 0
