"""CLI formatters — console, status indicators, durations."""

from __future__ import annotations

from rich.console import Console
from rich.text import Text


def get_console(no_color: bool = False) -> Console:
    """Get a Rich Console, optionally with color disabled."""
    return Console(no_color=no_color)


def status_indicator(status: str) -> Text:
    """Map a status string to a colored indicator."""
    mapping = {
        "ok": Text("> ", style="green"),
        "synced": Text("> ", style="green"),
        "stale": Text("- ", style="dim"),
        "missing": Text("x ", style="red"),
        "invalid": Text("! ", style="yellow"),
    }
    return mapping.get(status, Text("? ", style="dim"))


def format_duration(seconds: float) -> str:
    """Format a duration in human-readable form."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        m = int(seconds // 60)
        s = int(seconds % 60)
        return f"{m}m{s:02d}s"
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    return f"{h}h {m:02d}m"
