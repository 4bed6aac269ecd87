"""Fill a page from a JSON values file."""
from __future__ import annotations

import asyncio
import json
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fieldfill.autofill.engine import AutofillEngine, ScanSummary, StaticValueSource
from fieldfill.browser.automation import BrowserAutomation, BrowserConfig
from fieldfill.config import ScanOptions, get_settings
from fieldfill.detector.cache import DetectionCache
from fieldfill.detector.detector import FieldDetector

console = Console()


@click.command(name="fill")
@click.argument("url")
@click.option("--values", "values_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSON file of key -> value")
@click.option("--watch", "watch_seconds", type=float, default=0.0, help="Keep re-filling on DOM changes for this many seconds")
@click.option("--headless/--headed", default=None, help="Run browser in headless mode")
@click.option("--max-results", type=int, help="Candidates kept per key")
@click.option("--min-score", type=float, help="Drop candidates scoring below this")
@click.option("--include-hidden/--skip-hidden", default=None, help="Do not penalize type=hidden inputs")
@click.option("--prioritize-empty/--no-prioritize-empty", default=None, help="Prefer empty fields on ties")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
def fill_command(
    url: str,
    values_path: str,
    watch_seconds: float,
    headless: Optional[bool],
    max_results: Optional[int],
    min_score: Optional[float],
    include_hidden: Optional[bool],
    prioritize_empty: Optional[bool],
    as_json: bool,
):
    """
    Open URL and fill every field that matches a stored value.

    Examples:

      fieldfill fill https://example.com/signup --values profile.json

      fieldfill fill https://example.com/listing --values profile.json --watch 30 --headed
    """
    options = ScanOptions.from_settings().with_overrides(
        max_results=max_results,
        min_score=min_score,
        include_hidden=include_hidden,
        prioritize_empty=prioritize_empty,
    )
    source = StaticValueSource.from_file(values_path)
    summary = asyncio.run(_fill(url, source, options, headless, watch_seconds))
    if as_json:
        click.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        display_summary(summary)


async def _fill(
    url: str,
    source: StaticValueSource,
    options: ScanOptions,
    headless: Optional[bool],
    watch_seconds: float,
) -> ScanSummary:
    config = BrowserConfig.from_settings(get_settings(), headless=headless)
    async with BrowserAutomation(config) as automation:
        session = await automation.open(url)
        detector = FieldDetector(cache=DetectionCache(options.cache_ttl_ms, options.cache_max_entries))
        engine = AutofillEngine(session.adapter(), source, detector=detector, options=options)

        with console.status("[bold blue]Filling fields..."):
            summary = await engine.run_pass()

        if watch_seconds > 0:
            await engine.watch()
            console.print(f"[cyan]Watching for page changes for {watch_seconds:g}s...[/cyan]")
            try:
                await asyncio.sleep(watch_seconds)
            finally:
                await engine.stop()
            summary = engine.last_summary or summary
        return summary


def display_summary(summary: ScanSummary) -> None:
    table = Table(title="Fill Report", border_style="blue")
    table.add_column("Key", style="cyan")
    table.add_column("Filled")
    table.add_column("Element", style="magenta")
    table.add_column("Score", justify="right")
    table.add_column("Detail", style="dim")

    for report in summary.reports:
        if report.filled:
            status = "[green]✓[/green]"
        elif report.attempted:
            status = "[red]✗[/red]"
        else:
            status = "[yellow]-[/yellow]"
        table.add_row(
            report.key,
            status,
            report.element_descriptor or "",
            f"{report.score:.1f}" if report.element_descriptor else "",
            report.detail,
        )

    console.print(table)
    console.print(Panel(
        f"Filled [bold green]{summary.filled_count}[/bold green] of "
        f"[bold]{summary.total_attempted}[/bold] attempted keys",
        border_style="cyan",
    ))
