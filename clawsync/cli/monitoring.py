"""Monitoring commands — status."""

from __future__ import annotations

import json as json_mod
import time
from collections import deque
from pathlib import Path
from typing import Any, Optional

import click
from rich.table import Table

from clawsync.cli.formatters import format_duration, get_console, status_indicator


def _tail(path: Path, lines: int) -> list[str]:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
    except OSError:
        return []


def _read_stripped(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8").strip() or None
    except OSError:
        return None


def collect_status(config: Any, log_lines: int = 10) -> dict[str, Any]:
    """Gather document, marker and last-sync state from the filesystem."""
    from clawsync.document import DocumentStore
    from clawsync.sync import Marker, check_config_health

    paths = config.paths
    document = DocumentStore(paths.config_file)
    if document.exists():
        size, problems = check_config_health(document, config.sync.min_config_bytes)
        doc_status = "invalid" if problems else "ok"
    else:
        size, problems, doc_status = 0, [], "missing"

    marker_ts = Marker(paths.marker_file).timestamp()
    return {
        "config": {
            "path": str(document.path),
            "status": doc_status,
            "size_bytes": size,
            "problems": problems,
        },
        "storage": {
            "configured": config.storage.is_configured,
            "bucket": config.storage.bucket,
        },
        "marker_age_seconds": round(time.time() - marker_ts, 1) if marker_ts else None,
        "last_sync": _read_stripped(paths.last_sync_file),
        "sync_log_tail": _tail(paths.sync_log_file, log_lines),
    }


@click.command("status")
@click.option("--json", "json_output", is_flag=True, help="JSON output")
@click.option("--lines", "-n", default=10, show_default=True, help="Sync log lines to show")
@click.pass_context
def status_cmd(ctx: click.Context, json_output: bool, lines: int) -> None:
    """Show config document health and backup state."""
    from clawsync.config import BootstrapConfig

    status = collect_status(BootstrapConfig(), log_lines=lines)
    if json_output:
        click.echo(json_mod.dumps(status, indent=2))
        return

    console = get_console(no_color=(ctx.obj or {}).get("no_color", False))
    cfg = status["config"]
    table = Table(title="clawsync", show_header=True, header_style="bold")
    table.add_column("")
    table.add_column("Item")
    table.add_column("Value")
    table.add_row(
        status_indicator(cfg["status"]),
        "Config",
        f"{cfg['path']} ({cfg['size_bytes']} bytes)",
    )
    for problem in cfg["problems"]:
        table.add_row("", "", problem)
    storage = status["storage"]
    table.add_row(
        status_indicator("ok" if storage["configured"] else "missing"),
        "Bucket",
        storage["bucket"] if storage["configured"] else "not configured",
    )
    age = status["marker_age_seconds"]
    table.add_row(
        status_indicator("synced" if age is not None else "stale"),
        "Last scan",
        f"{format_duration(age)} ago" if age is not None else "never",
    )
    table.add_row(
        status_indicator("synced" if status["last_sync"] else "stale"),
        "Last sync",
        status["last_sync"] or "never",
    )
    console.print(table)

    if status["sync_log_tail"]:
        console.print()
        console.print("[bold]Sync log[/bold]")
        for line in status["sync_log_tail"]:
            console.print(line, markup=False, highlight=False)
