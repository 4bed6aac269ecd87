"""Check a value against stored values before saving it."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from fieldfill.autofill.duplicates import DuplicateGuard, DuplicateVerdict
from fieldfill.autofill.engine import SOCIAL_LINKS_KEY
from fieldfill.config import DUPLICATE_MODES, ScanOptions, get_settings

console = Console()


@click.command(name="check-duplicate")
@click.argument("key")
@click.argument("value")
@click.option("--values", "values_path", required=True, type=click.Path(exists=True, dir_okay=False), help="JSON file of stored values")
@click.option("--mode", type=click.Choice(DUPLICATE_MODES), help="strict rejects duplicates, warn only reports them")
@click.option("--threshold", type=float, help="Similarity above which values count as duplicates")
@click.option("--link", "as_link", is_flag=True, help="Treat KEY as a social platform and VALUE as its URL")
def check_duplicate_command(
    key: str,
    value: str,
    values_path: str,
    mode: Optional[str],
    threshold: Optional[float],
    as_link: bool,
):
    """
    Report whether VALUE duplicates a stored value. Exits with status 1 on a strict rejection.

    Examples:

      fieldfill check-duplicate facebook https://www.facebook.com/acme --values profile.json --link
    """
    settings = get_settings()
    options = ScanOptions.from_settings(settings).with_overrides(similarity_threshold=threshold)
    guard = DuplicateGuard(mode=mode or settings.duplicate_mode, similarity_threshold=options.similarity_threshold)
    stored = json.loads(Path(values_path).read_text(encoding="utf-8"))
    if not isinstance(stored, dict):
        raise click.BadParameter("expected a JSON object", param_hint="--values")

    if as_link:
        links = stored.get(SOCIAL_LINKS_KEY) or []
        if isinstance(links, dict):
            links = [{"platform": platform, "url": url} for platform, url in links.items()]
        verdict = guard.check_link(key, value, links)
    else:
        existing = {name: item for name, item in stored.items() if name != SOCIAL_LINKS_KEY and isinstance(item, str)}
        verdict = guard.check(key, value, existing)

    display_verdict(verdict)
    if not verdict.allows_write:
        sys.exit(1)


def display_verdict(verdict: DuplicateVerdict) -> None:
    if not verdict.is_duplicate:
        console.print("[green]✓[/green] No duplicate found")
        return

    table = Table(show_header=False, border_style="yellow" if verdict.allows_write else "red")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Reason", verdict.reason or "")
    table.add_row("Matched key", verdict.matched_key or "")
    table.add_row("Existing value", verdict.matched_existing_value or "")
    table.add_row("Similarity", f"{verdict.similarity:.3f}")
    table.add_row("Mode", verdict.mode)
    table.add_row("Write allowed", "yes" if verdict.allows_write else "no")
    console.print(table)
    console.print(f"[{'yellow' if verdict.allows_write else 'red'}]{verdict.message}[/]")
