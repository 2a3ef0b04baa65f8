"""CLI application — Click-based command hierarchy for clawsync.

The main CLI group and shared helpers. Subcommand modules register
themselves by importing and adding to the group.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any

import click


def async_cmd(func):
    """Decorator to run an async Click command via asyncio.run()."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


@click.group()
@click.option("--no-color", is_flag=True, help="Disable ANSI colors")
@click.pass_context
def cli(ctx: click.Context, no_color: bool) -> None:
    """clawsync - bootstrap and back up an OpenClaw sandbox."""
    ctx.ensure_object(dict)
    ctx.obj["no_color"] = no_color


# ---------------------------------------------------------------------------
# Register subcommand modules
# ---------------------------------------------------------------------------

def _register_subcommands() -> None:
    """Import and register all subcommands."""
    from clawsync.cli.commands import reconcile_cmd, restore_cmd, start_cmd, sync_loop_cmd
    from clawsync.cli.monitoring import status_cmd

    cli.add_command(start_cmd)
    cli.add_command(sync_loop_cmd)
    cli.add_command(reconcile_cmd)
    cli.add_command(restore_cmd)
    cli.add_command(status_cmd)


_register_subcommands()
