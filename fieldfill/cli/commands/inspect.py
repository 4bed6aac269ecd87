"""Inspect the fillable fields of a page."""
from __future__ import annotations

import asyncio
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from fieldfill.browser.automation import BrowserAutomation, BrowserConfig
from fieldfill.config import get_settings
from fieldfill.detector.detector import FieldDetector, InspectedField

console = Console()


@click.command(name="inspect")
@click.argument("url")
@click.option("--headless/--headed", default=None, help="Run browser in headless mode")
@click.option("--top", type=int, default=3, help="Classifications shown per field")
def inspect_command(url: str, headless: Optional[bool], top: int):
    """
    List every fillable element on URL with its top classifications.
    """
    fields_found = asyncio.run(_inspect(url, headless))
    display_fields(fields_found, top)


async def _inspect(url: str, headless: Optional[bool]) -> List[InspectedField]:
    config = BrowserConfig.from_settings(get_settings(), headless=headless)
    async with BrowserAutomation(config) as automation:
        session = await automation.open(url)
        with console.status("[bold blue]Scanning fields..."):
            return await FieldDetector().scan_page(session.adapter())


def display_fields(fields_found: List[InspectedField], top: int = 3) -> None:
    if not fields_found:
        console.print("[yellow]No fillable fields found[/yellow]")
        return

    table = Table(title=f"{len(fields_found)} fillable fields", border_style="blue")
    table.add_column("Element", style="magenta")
    table.add_column("Shape", style="cyan")
    table.add_column("Label")
    table.add_column("Visibility")
    table.add_column("Classification", style="green")

    for item in fields_found:
        record = item.record
        matches = ", ".join(f"{match.key} ({match.confidence:.2f})" for match in item.matches[:top])
        table.add_row(
            record.describe(),
            record.shape.value,
            record.label_text or record.aria_label,
            record.visibility.value,
            matches or "[dim]unclassified[/dim]",
        )
    console.print(table)
