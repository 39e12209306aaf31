#!/usr/bin/env python3
"""
HERDBOOK CLI

Command-line driver for the livestock registry.

Usage:
    herdbook <command> [subcommand] [options]

Commands:
    replay      Run a transaction batch against a fresh registry
    validate    Check a transaction batch against its schema
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

from herdbook import __version__


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        data = data["results"]

    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class HerdbookCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="herdbook",
            description="HERDBOOK livestock registry CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"herdbook {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file to load before running",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        replay = self.subparsers.add_parser("replay", help="Run a transaction batch")
        replay.add_argument("batch", help="Batch file (YAML or JSON)")
        replay.add_argument(
            "--export",
            action="store_true",
            help="Include the final registry state in the output",
        )
        replay.add_argument(
            "--audit",
            action="store_true",
            help="Include the audit trail in the output",
        )

        validate = self.subparsers.add_parser("validate", help="Validate a transaction batch")
        validate.add_argument("batch", help="Batch file (YAML or JSON)")

        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., registry.max_records)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.config:
                from herdbook.config import get_config_manager
                get_config_manager().load_from_file(parsed.config)

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Batch handlers
    def _handle_replay(self, args: argparse.Namespace) -> Any:
        from herdbook.batch import BatchError, load_batch, registry_for_batch, replay_batch

        try:
            batch = load_batch(args.batch)
        except BatchError as e:
            raise CLIError(str(e))

        registry = registry_for_batch(batch)
        results = replay_batch(batch, registry)

        out: dict = {
            "results": [r.to_dict() for r in results],
            "statistics": registry.get_statistics(),
        }
        if args.export:
            out["registry"] = registry.export_registry()
        if args.audit:
            out["audit"] = [e.to_dict() for e in registry.audit_trail()]
        return out

    def _handle_validate(self, args: argparse.Namespace) -> Any:
        from herdbook.batch import BatchError, load_batch

        try:
            batch = load_batch(args.batch)
        except BatchError as e:
            return {"valid": False, "errors": e.errors or [str(e)]}
        return {"valid": True, "transactions": len(batch["transactions"])}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from herdbook.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from herdbook.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from herdbook.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from herdbook.config import get_config_manager
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    return HerdbookCLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
