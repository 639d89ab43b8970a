"""Command line entry point for exports and automation runs."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Optional, Sequence

from scanexport.core.errors import ConfigurationError, ExportError
from scanexport.core.logging import configure_logging
from scanexport.core.models import ExportFormat, ExportOptions
from scanexport.core.utils import ExportSettings
from scanexport.export.orchestrator import build_orchestrator
from scanexport.rules.engine import RuleEngine, create_default_automation_rules, load_rules_file

logger = logging.getLogger(__name__)


def load_items(path: Path) -> List[Any]:
    """Read scanned items from a JSON file: a list or ``{"items": [...]}``."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Input file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Input file {path} is not valid JSON: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        raise ConfigurationError(f"Input file {path} must contain a list of items")
    return payload


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with ``export`` and ``automate`` subcommands."""

    parser = argparse.ArgumentParser(description="Export scanned data and run automation rules")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG, including HTTP clients")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export", help="Export scanned items once")
    export.add_argument("--input", type=Path, required=True, help="JSON file with scanned items")
    export.add_argument(
        "--format",
        choices=[fmt.value for fmt in ExportFormat],
        default=ExportFormat.CSV.value,
        help="Output format",
    )
    export.add_argument("--timestamps", action="store_true", help="Include the timestamp column")
    export.add_argument("--product-info", action="store_true", help="Include product columns")
    export.add_argument("--metadata", action="store_true", help="Include scan count and location columns")
    export.add_argument("--date-format", default="iso", help="iso, local, date-only or time-only")
    export.add_argument("--output-dir", type=Path, help="Directory to write the export into")
    export.add_argument("--file-name", help="Custom file name for the export")
    export.add_argument("--email", help="Email the export to this address")
    export.add_argument("--upload", action="store_true", help="Copy the export into the upload folder")
    export.add_argument("--bom", action="store_true", help="Prefix CSV output with a UTF-8 BOM")

    automate = subparsers.add_parser("automate", help="Evaluate automation rules against scanned items")
    automate.add_argument("--rules", type=Path, help="JSON file with automation rules")
    automate.add_argument("--input", type=Path, required=True, help="JSON file with scanned items")
    automate.add_argument(
        "--defaults",
        action="store_true",
        help="Also load the built-in starter rules (enabled)",
    )
    return parser


async def run_export(args: argparse.Namespace, settings: ExportSettings) -> int:
    if args.output_dir:
        settings = replace(settings, output_dir=args.output_dir)
    options = ExportOptions(
        include_timestamps=args.timestamps,
        include_product_info=args.product_info,
        include_metadata=args.metadata,
        date_format=args.date_format,
        custom_file_name=args.file_name,
        send_email=bool(args.email),
        email_address=args.email,
        auto_upload=args.upload,
        add_bom=args.bom,
        chunk_size=settings.chunk_size,
    )
    orchestrator = build_orchestrator(settings)
    if args.format == ExportFormat.GOOGLE_SHEETS.value:
        orchestrator.encoders[ExportFormat.GOOGLE_SHEETS].sink.connect()

    def report(event) -> None:
        if event.error:
            logger.error("Export error: %s", event.error)
        else:
            logger.info("[%3.0f%%] %s", event.percentage, event.status)

    result = await orchestrator.export(load_items(args.input), args.format, options, on_progress=report)
    uri = result.artifact.uri if result.artifact else "(no artifact)"
    print(f"Exported {result.item_count} items to {uri}")
    return 0


async def run_automation(args: argparse.Namespace, settings: ExportSettings) -> int:
    orchestrator = build_orchestrator(settings)
    engine = RuleEngine(
        exporter=orchestrator,
        email=orchestrator.email,
        cloud=orchestrator.cloud,
        webhook_timeout=settings.webhook_timeout,
    )
    rules: List[Any] = load_rules_file(args.rules) if args.rules else []
    if args.defaults:
        rules.extend(dict(rule, enabled=True) for rule in create_default_automation_rules())
    for rule in rules:
        engine.add_rule(rule)

    runs = await engine.run(load_items(args.input))
    if not runs:
        print("No rules triggered")
    for run in runs:
        print(f"Rule {run.rule.name!r} triggered")
        for result in run.results:
            print(f"  {json.dumps(result.to_dict(), default=str)}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entrypoint for the ``scanexport`` command."""

    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    settings = ExportSettings.from_env()
    handler = run_export if args.command == "export" else run_automation
    try:
        return asyncio.run(handler(args, settings))
    except ExportError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
