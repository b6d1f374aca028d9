#!/usr/bin/env python3
"""
VB100 Results CLI

Usage:
    vb100 serve                       # Run the API server
    vb100 show 2025 6                 # Show a period's rows with grades
    vb100 show 2025 6 --product P1    # Only one product
    vb100 thresholds 100000           # Grade cut-points for a clean set size
    vb100 snapshot 2025 6             # Lock a period
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vb100.core.config import settings
from vb100.core.exceptions import VB100Error
from vb100.services.grading import compute_thresholds


console = Console()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="vb100",
        description="VB100 Results - monthly test results, grading and snapshots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vb100 serve                      Start the API on SERVER_HOST:SERVER_PORT
  vb100 show 2025 6                Print the June 2025 results table
  vb100 thresholds 100000          Print A+/A/B/C/D cut-points
  vb100 snapshot 2025 6            Lock June 2025 (cannot be undone)
        """
    )
    parser.add_argument(
        "--api-url",
        default=settings.API_BASE_URL,
        help=f"Results API base URL (default: {settings.API_BASE_URL})"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("serve", help="Run the API server")

    show_parser = subparsers.add_parser("show", help="Show a period's results")
    show_parser.add_argument("year", type=int)
    show_parser.add_argument("month", type=int)
    show_parser.add_argument("--product", "-p", help="Only show this product id")

    thresholds_parser = subparsers.add_parser("thresholds", help="Grade cut-points for a clean sample size")
    thresholds_parser.add_argument("clean_sample_size", type=float)

    snapshot_parser = subparsers.add_parser("snapshot", help="Lock a period")
    snapshot_parser.add_argument("year", type=int)
    snapshot_parser.add_argument("month", type=int)

    return parser


def _fmt(value: Any) -> str:
    return "" if value is None else str(value)


def render_thresholds(clean_sample_size: float) -> Table:
    thresholds = compute_thresholds(clean_sample_size)
    table = Table(title=f"Grade cut-points (clean set: {int(clean_sample_size):,})")
    table.add_column("Grade", style="bold cyan")
    table.add_column("Max count", justify="right")
    for label, limit in thresholds.as_labels().items():
        table.add_row(label, f"{limit:,}")
    table.add_row("F", f"> {thresholds.d:,}", style="red")
    return table


def render_period(data: Dict[str, Any]) -> Table:
    meta = data.get("meta", {})
    rows: List[Dict[str, Any]] = data.get("rows", [])
    status = "[red]LOCKED[/red]" if meta.get("locked") else "[green]open[/green]"
    table = Table(
        title=f"{meta.get('testSetName', '')} {meta.get('year')}-{meta.get('month', 0):02d} ({status})",
        caption=f"Clean sample size: {meta.get('cleanSampleSize')}"
                + (f" | Snapshot: {meta['snapshotAt']}" if meta.get("snapshotAt") else ""),
    )
    for column in ("Product", "Name", "VM", "Stage", "Cert miss", "FPs", "Cfn preview", "Cfn final", "Grade"):
        table.add_column(column, justify="right" if column not in ("Product", "Name", "VM", "Stage") else "left")

    for row in rows:
        style = "magenta" if row.get("privateFlag") else ("yellow" if row.get("invResFlag") else None)
        table.add_row(
            row.get("productId", ""),
            _fmt(row.get("productName")),
            _fmt(row.get("vmName")),
            _fmt(row.get("stage")),
            _fmt(row.get("certMiss")),
            _fmt(row.get("fps")),
            _fmt(row.get("cfnPreview")),
            _fmt(row.get("cfnFinal")),
            _fmt(row.get("grade")),
            style=style,
        )
    return table


async def _show(api_url: str, year: int, month: int, product: Optional[str]) -> None:
    from vb100.client.results_client import ResultsClient

    async with ResultsClient(base_url=api_url) as client:
        data = await client.get_period(year, month, product_id=product)
    console.print(render_period(data))


async def _snapshot(api_url: str, year: int, month: int) -> None:
    from vb100.client.results_client import ResultsClient

    async with ResultsClient(base_url=api_url) as client:
        meta = await client.take_snapshot(year, month)
    console.print(Panel(
        f"Period {year}-{month:02d} locked at [bold]{meta.get('snapshotAt')}[/bold]",
        title="Snapshot",
        border_style="green"
    ))


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "serve":
            from vb100.main import run
            run()
        elif args.command == "thresholds":
            console.print(render_thresholds(args.clean_sample_size))
        elif args.command == "show":
            asyncio.run(_show(args.api_url, args.year, args.month, args.product))
        elif args.command == "snapshot":
            asyncio.run(_snapshot(args.api_url, args.year, args.month))
    except VB100Error as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
