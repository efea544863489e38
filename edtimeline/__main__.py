#!/usr/bin/env python3
"""
EDTimeline CLI entry point.

Usage:
    python -m edtimeline summarize <bundle.json> [--json OUT] [--excel OUT] [--text]
    python -m edtimeline help

Exit codes:
    0  success
    1  usage error (unknown command, missing bundle file)
    2  the bundle could not be summarized
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from edtimeline import __version__

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


def _summarize_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="python -m edtimeline summarize")
    ap.add_argument("bundle", help="Path to a FHIR Bundle JSON file")
    ap.add_argument("--json", dest="json_out", default=None, help="Write the snapshot JSON to this path")
    ap.add_argument("--excel", dest="excel_out", default=None, help="Write the snapshot workbook to this path")
    ap.add_argument("--text", action="store_true", help="Print the critical panel as text")
    ap.add_argument("--config", default=None, help="Optional timeline config JSON")
    ap.add_argument("--vital-hours", type=int, default=None, help="Override vital_recent_hours")
    ap.add_argument("--event-days", type=int, default=None, help="Override clinical_event_days")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")
    return ap


def cmd_summarize(args: List[str]) -> int:
    """Summarize one bundle file."""
    if not args:
        print("Usage: python -m edtimeline summarize <bundle.json>")
        return 1

    opts = _summarize_parser().parse_args(args)
    _configure_logging(opts.verbose)

    from edtimeline.core.config_loader import load_timeline_config
    from edtimeline.core.errors import TimelineError
    from edtimeline.fhir.engine import summarize_bundle_str
    from edtimeline.reporting.json_export import format_timestamp, write_snapshot_json

    bundle_path = Path(opts.bundle)
    if not bundle_path.is_file():
        print(f"Error: Bundle file not found: {bundle_path}")
        return 1

    config = load_timeline_config(
        path=Path(opts.config) if opts.config else None,
        overrides={
            "vital_recent_hours": opts.vital_hours,
            "clinical_event_days": opts.event_days,
        },
    )

    try:
        snapshot = summarize_bundle_str(bundle_path.read_bytes(), config)
    except TimelineError as exc:
        print(f"Error [{exc.error_code}]: {exc.message}", file=sys.stderr)
        return 2

    print(f"EDTimeline -- {bundle_path.name}")
    print(f"  Generated:       {format_timestamp(snapshot.generated_at)}")
    print(f"  Critical alerts: {len(snapshot.critical.alerts)}")
    print(f"  Events:          {len(snapshot.events)}")

    if opts.text:
        from edtimeline.reporting.text_summary import format_critical_panel
        print()
        print(format_critical_panel(snapshot))
        print()

    if opts.json_out:
        json_path = write_snapshot_json(snapshot, Path(opts.json_out))
        print(f"  JSON:  {json_path}")

    if opts.excel_out:
        from edtimeline.reporting.excel_export import write_snapshot_workbook
        excel_path = write_snapshot_workbook(snapshot, Path(opts.excel_out))
        print(f"  Excel: {excel_path}")

    return 0


def cmd_help(args: List[str]) -> int:
    """Show help."""
    print(f"EDTimeline {__version__} -- emergency critical panel and timeline")
    print()
    print("Usage: python -m edtimeline <command> [args]")
    print()
    print("Commands:")
    print("  summarize <bundle.json>   Summarize a FHIR Bundle")
    print("      --json OUT            write the snapshot JSON")
    print("      --excel OUT           write the snapshot workbook (.xlsx)")
    print("      --text                print the critical panel")
    print("      --config FILE         timeline config JSON")
    print("      --vital-hours N       recent-vitals window (default 6)")
    print("      --event-days N        clinical-event window (default 30)")
    print("      --verbose             debug logging")
    print("  help                      Show this help message")
    print()
    print("Examples:")
    print("  python -m edtimeline summarize bundle.json --text")
    print("  python -m edtimeline summarize bundle.json --json out/snapshot.json --excel out/snapshot.xlsx")
    print()
    return 0


_COMMANDS = {
    "summarize": cmd_summarize,
    "help": cmd_help,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        return cmd_help([])

    command = args[0].lower()
    handler = _COMMANDS.get(command)
    if handler is None:
        print(f"Unknown command: {command}")
        print()
        cmd_help([])
        return 1

    return handler(args[1:])


if __name__ == "__main__":
    raise SystemExit(main())
