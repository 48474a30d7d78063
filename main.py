"""
Personal finance assistant — CLI entrypoint.

Commands:
- metrics       run investments metrics for a user and print them
- manifest      print the investments manifest
- validate-doc  validate a DOC JSON file
- orchestrate   plan and execute a request through the coordinator agents
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agents.coordinator import build_coordinators
from execution.manager import ExecutionManager
from execution.result_combiner import ExecutionReport
from investments.brapi_client import BrapiClient
from investments.filters import FilterValidationError
from investments.repository import InvestmentsRepository
from investments.service import InvestmentsMetricsService
from models.selector import ModelSelector
from orchestrator.planner import DocPlanner
from orchestrator.validators import validate_doc
from shared import settings

# ─── Rich Console ───────────────────────────────────────────────

console = Console()

_STATUS_STYLES = {
    "ok": "green",
    "empty": "yellow",
    "error": "red",
    "not_found": "magenta",
}


def setup_logging() -> None:
    """Configure logging."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_service(db_path: str | None = None) -> InvestmentsMetricsService:
    repository = InvestmentsRepository(db_path or settings.INVESTMENTS_DB_PATH)
    return InvestmentsMetricsService(repository, price_provider=BrapiClient())


def _summarize_data(data: Any) -> str:
    if not isinstance(data, dict):
        return "-"
    summary = data.get("summary")
    if isinstance(summary, dict):
        return ", ".join(f"{key}={value}" for key, value in summary.items())
    widget = data.get("widget")
    if isinstance(widget, dict):
        return str(widget.get("title") or widget.get("rootView") or "widget")
    return ", ".join(sorted(data.keys()))


def render_metrics(response: dict[str, Any]) -> None:
    table = Table(
        title=f"📊 Metrics (trace {response.get('trace_id', '')[:8]})",
        box=box.SIMPLE_HEAVY,
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Metric", style="bold white")
    table.add_column("Status")
    table.add_column("Elapsed (ms)", justify="right")
    table.add_column("Summary", style="dim")

    for metric in response.get("metrics", []):
        status = metric.get("status", "")
        style = _STATUS_STYLES.get(status, "white")
        detail = metric.get("error") or _summarize_data(metric.get("data"))
        table.add_row(
            metric.get("metric_id", ""),
            f"[{style}]{status}[/{style}]",
            str(metric.get("meta", {}).get("elapsed_ms", "")),
            detail,
        )
    console.print(table)


def render_report(report: ExecutionReport) -> None:
    border = "green" if report.success else "red"
    console.print(Panel(
        Text(f"Completed: {', '.join(report.completed) or '-'}\nFailed: {', '.join(report.failed) or '-'}"),
        title=f"🤖 Execution {report.request_id[:8]} ({report.elapsed_ms} ms)",
        border_style=border,
        box=box.ROUNDED,
    ))
    for result in report.results:
        console.print(Panel(
            Text(json.dumps(result.result, ensure_ascii=False, indent=2, default=str)),
            title=f"{result.agent} — {'ok' if result.task_completed else 'failed'}",
            subtitle=result.reasoning[:80],
            border_style="cyan" if result.task_completed else "red",
            box=box.SIMPLE,
        ))


async def _query_metrics(
    service: InvestmentsMetricsService,
    user_id: str,
    metric_ids: list[str],
    filters: Any,
) -> dict[str, Any]:
    try:
        return await service.query_metrics(user_id, metric_ids, filters)
    finally:
        await service.close()


def run_metrics(user_id: str, metric_ids: list[str], filters_raw: str | None, db_path: str | None) -> int:
    try:
        filters = json.loads(filters_raw) if filters_raw else None
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid filters JSON:[/red] {e}")
        return 2

    try:
        response = asyncio.run(_query_metrics(build_service(db_path), user_id, metric_ids, filters))
    except FilterValidationError as e:
        console.print(f"[red]Invalid filters:[/red] {e}")
        return 2

    render_metrics(response)
    return 0


def show_manifest(db_path: str | None) -> int:
    service = build_service(db_path)
    try:
        manifest = service.get_manifest()
    finally:
        asyncio.run(service.close())

    table = Table(title=f"Investments manifest v{manifest['version']}")
    table.add_column("Metric", style="cyan")
    table.add_column("Title", style="white")
    table.add_column("Version", style="magenta")
    table.add_column("Filters", style="dim")
    for metric in manifest["metrics"]:
        table.add_row(
            metric["id"],
            metric.get("title", ""),
            metric.get("version", ""),
            ", ".join(metric.get("supported_filters", [])),
        )
    console.print(table)
    return 0


def run_validate_doc(path: str) -> int:
    try:
        with open(path, encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read DOC:[/red] {e}")
        return 2

    validation = validate_doc(doc)
    if validation.valid:
        console.print("[bold green]✅ DOC is valid[/bold green]")
    else:
        console.print("[bold red]❌ DOC is invalid[/bold red]")
        for error in validation.errors:
            console.print(f"  [red]•[/red] {error}")
    for warning in validation.warnings:
        console.print(f"  [yellow]⚠[/yellow] {warning}")
    return 0 if validation.valid else 1


async def run_orchestrate(query: str) -> int:
    selector = ModelSelector(base_url=settings.MODEL_BASE_URL)
    try:
        planner = DocPlanner(selector)
        with console.status("[bold cyan]Planning...[/bold cyan]"):
            doc = await planner.plan(query)
        console.print(Panel(Text(doc.reasoning), title="🧭 Plan", border_style="cyan", box=box.ROUNDED))

        manager = ExecutionManager(build_coordinators(selector))
        with console.status("[bold cyan]Executing agents...[/bold cyan]"):
            report = await manager.execute(doc)
        render_report(report)
        return 0 if report.success else 1
    finally:
        await selector.close()


def main(argv: list[str] | None = None) -> int:
    """Entrypoint with CLI args."""
    setup_logging()

    parser = argparse.ArgumentParser(description="Personal finance assistant")
    parser.add_argument("--db", default=None, help="Investments SQLite path (default: INVESTMENTS_DB_PATH)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    metrics_parser = subparsers.add_parser("metrics", help="Run investments metrics for a user")
    metrics_parser.add_argument("user_id", help="User id")
    metrics_parser.add_argument("metric_ids", nargs="+", help="Metric ids (e.g. investments.net_worth)")
    metrics_parser.add_argument("--filters", default=None, help="Filters JSON (e.g. '{\"assetClasses\": [\"equity\"]}')")

    subparsers.add_parser("manifest", help="Show the investments manifest")

    validate_parser = subparsers.add_parser("validate-doc", help="Validate a DOC JSON file")
    validate_parser.add_argument("path", help="Path to the DOC JSON file")

    orchestrate_parser = subparsers.add_parser("orchestrate", help="Plan and execute a request")
    orchestrate_parser.add_argument("query", help="User request")

    args = parser.parse_args(argv)

    if args.command == "metrics":
        return run_metrics(args.user_id, args.metric_ids, args.filters, args.db)
    if args.command == "manifest":
        return show_manifest(args.db)
    if args.command == "validate-doc":
        return run_validate_doc(args.path)
    if args.command == "orchestrate":
        try:
            return asyncio.run(run_orchestrate(args.query))
        except KeyboardInterrupt:
            return 130

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
