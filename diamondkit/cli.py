#!/usr/bin/env python3
"""
DIAMONDKIT CLI

Command-line interface for inspecting interfaces and dry-running composite
assemblies on a simulated chain.

Usage:
    diamondkit <command> [subcommand] [options]

Commands:
    selectors   Print fingerprints of interface/ABI files
    plan        Compute the module cuts of a manifest without assembling
    verify      Simulate a manifest's assembly and report coverage
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from diamondkit import __version__
from diamondkit.observability import DiamondLayer, get_logger


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


@dataclass
class CommandResult:
    """Handler output together with a non-default exit code."""
    data: Any
    exit_code: int = 0


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:60] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
        lines.append(header_line)
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class DiamondCLI:
    """Main CLI application."""

    def __init__(self):
        self.logger = get_logger("cli", DiamondLayer.CLI)
        self.parser = argparse.ArgumentParser(
            prog="diamondkit",
            description="Modular contract assembly and timelock simulation",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"diamondkit {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Load configuration from a YAML file before running",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_selectors_command()
        self._register_manifest_commands()
        self._register_config_commands()

    def _register_selectors_command(self) -> None:
        selectors = self.subparsers.add_parser("selectors", help="Print function fingerprints")
        selectors.add_argument("files", nargs="+", help="JSON ABI, compiled artifact or YAML interface file")
        selectors.add_argument(
            "--exclude", "-x",
            action="append",
            default=[],
            help="Signature to leave out (repeatable)",
        )

    def _register_manifest_commands(self) -> None:
        plan = self.subparsers.add_parser("plan", help="Compute module cuts without assembling")
        plan.add_argument("manifest", help="Assembly manifest (YAML or JSON)")

        verify = self.subparsers.add_parser("verify", help="Simulate assembly and check coverage")
        verify.add_argument("manifest", help="Assembly manifest (YAML or JSON)")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., governance.timelock_seconds)")

        # config set
        set_cmd = config_sub.add_parser("set", help="Set configuration value")
        set_cmd.add_argument("path", help="Config path")
        set_cmd.add_argument("value", help="Value to set")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.config:
                from diamondkit.config import get_config_manager
                get_config_manager().load_from_file(parsed.config)

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)
            exit_code = 0
            if isinstance(result, CommandResult):
                exit_code = result.exit_code
                result = result.data

            if result is not None:
                print(format_output(result, fmt))

            return exit_code

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            self.logger.error("Command failed", error_code=type(e).__name__, command=parsed.command)
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

    # Interface handlers
    def _handle_selectors(self, args: argparse.Namespace) -> Any:
        from diamondkit.fingerprint import SelectorSet, describe_signatures
        from diamondkit.manifest import load_interface_file

        rows = []
        for path in args.files:
            for descriptor in load_interface_file(path):
                kept = SelectorSet(descriptor.functions).remove(args.exclude)
                functions = [f for f in descriptor.functions if f.fingerprint in kept]
                rows.extend(describe_signatures(functions, owner=descriptor.name))
        return rows

    # Manifest handlers
    def _handle_plan(self, args: argparse.Namespace) -> Any:
        from diamondkit.assembly import AssemblyBuilder
        from diamondkit.chain import SimulatedChain
        from diamondkit.manifest import load_manifest

        manifest = load_manifest(args.manifest)
        chain = SimulatedChain()
        plan = manifest.to_plan(chain)
        index, cuts = AssemblyBuilder(chain).plan_cuts(plan)
        return {
            "manifest": manifest.source,
            "required": len(index),
            "cuts": [
                {
                    "module": chain.at(cut.module_address).name,
                    **cut.to_dict(),
                    "functions": index.names(cut.fingerprints),
                }
                for cut in cuts
            ],
        }

    def _handle_verify(self, args: argparse.Namespace) -> Any:
        from diamondkit.assembly import AssemblyBuilder
        from diamondkit.chain import SimulatedChain
        from diamondkit.manifest import load_manifest

        manifest = load_manifest(args.manifest)
        chain = SimulatedChain()
        plan = manifest.to_plan(chain)
        plan.verify = False
        result = AssemblyBuilder(chain).build(plan)
        report = result.report.to_dict()
        if not result.report.complete:
            if not args.quiet:
                print(
                    f"Error: Deployed modules are missing methods {', '.join(result.report.missing_names)}",
                    file=sys.stderr,
                )
            return CommandResult(report, exit_code=1)
        return report

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from diamondkit.config import get_config_manager
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_set(self, args: argparse.Namespace) -> Any:
        from diamondkit.config import get_config_manager
        mgr = get_config_manager()
        mgr.set(args.path, args.value)
        return {"path": args.path, "value": mgr.get(args.path), "status": "updated"}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from diamondkit.config import get_config_manager
        mgr = get_config_manager()
        return mgr.config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from diamondkit.config import get_config_manager
        mgr = get_config_manager()
        errors = mgr.validate()
        if errors:
            return CommandResult({"valid": False, "errors": errors}, exit_code=1)
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from diamondkit.config import get_config_manager
        mgr = get_config_manager()
        return mgr.export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = DiamondCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
