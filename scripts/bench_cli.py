#!/usr/bin/env python3
"""
Bench CLI Tool

Starts bench runs and prints their reports.
"""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_config
from utils.report_client import BenchReportClient

REPORTS = ["state", "histogram", "histogram_csv", "report_window", "metrics", "metrics_csv"]


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_request(path: str) -> dict:
    """Read a run spec from a JSON file, ``-`` meaning stdin."""
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_client(args) -> BenchReportClient:
    app_config = get_config()
    if args.temporal_host:
        app_config.temporal.host = args.temporal_host
    if args.namespace:
        app_config.temporal.namespace = args.namespace
    if args.prometheus_url:
        app_config.prometheus.endpoint = args.prometheus_url
    return BenchReportClient(app_config)


async def start_run(args):
    """Start a bench run from a spec file."""
    client = build_client(args)
    workflow_id = await client.start_run(load_request(args.spec), workflow_id=args.workflow_id)
    if args.json:
        print(json.dumps({"workflow_id": workflow_id}))
    else:
        print(f"Started bench run: {workflow_id}")


async def print_report(args):
    """Print one report of a bench run."""
    client = build_client(args)

    if args.report == "state":
        output = json.dumps(await client.get_state(args.workflow_id), indent=2)
    elif args.report == "histogram":
        output = await client.get_histogram(args.workflow_id)
    elif args.report == "histogram_csv":
        output = await client.get_histogram_csv(args.workflow_id)
    elif args.report == "report_window":
        window = await client.get_report_window(args.workflow_id)
        output = json.dumps(window.to_payload(), indent=2)
    elif args.report == "metrics":
        output = await client.get_metrics_json(args.workflow_id)
    else:
        output = await client.get_metrics_csv(args.workflow_id)

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Wrote {args.report} of {args.workflow_id} to {args.output}")
    else:
        print(output)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Start Temporal bench runs and fetch their reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start a bench run
  python bench_cli.py start scenario.json

  # Start with a fixed workflow id
  python bench_cli.py start scenario.json --workflow-id bench-1

  # Histogram as CSV
  python bench_cli.py report bench-1 histogram_csv

  # Server metrics for the run window
  python bench_cli.py report bench-1 metrics_csv --output metrics.csv
"""
    )

    # Global options
    parser.add_argument("--temporal-host", help="Temporal server host (default: TEMPORAL_HOST)")
    parser.add_argument("--namespace", help="Temporal namespace (default: TEMPORAL_NAMESPACE)")
    parser.add_argument("--prometheus-url", help="Prometheus server (default: PROMETHEUS_SERVER_ENDPOINT)")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    start_parser = subparsers.add_parser("start", help="Start a bench run")
    start_parser.add_argument("spec", help="Run spec JSON file, '-' for stdin")
    start_parser.add_argument("--workflow-id", help="Bench workflow id")

    report_parser = subparsers.add_parser("report", help="Fetch a report of a bench run")
    report_parser.add_argument("workflow_id", help="Bench workflow id")
    report_parser.add_argument("report", choices=REPORTS, help="Report to fetch")
    report_parser.add_argument("--output", "-o", help="Write the report to a file")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    # Setup logging
    setup_logging(args.verbose)

    # Run appropriate command
    try:
        if args.command == "start":
            asyncio.run(start_run(args))
        elif args.command == "report":
            asyncio.run(print_report(args))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
