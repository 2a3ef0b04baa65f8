"""Lifecycle commands — start, sync-loop, reconcile, restore."""

from __future__ import annotations

import logging

import click
import structlog

from clawsync.cli.app import async_cmd


@click.command("start")
def start_cmd() -> None:
    """Restore, provision, reconcile, start backups, then exec the gateway."""
    from clawsync.main import configure_logging, startup
    from clawsync.onboard import OnboardingError

    configure_logging()

    try:
        startup()
    except OnboardingError as e:
        structlog.get_logger(__name__).error("startup.onboarding_failed", error=str(e))
        raise click.ClickException(f"Onboarding failed: {e}")


@click.command("sync-loop")
def sync_loop_cmd() -> None:
    """Run the background backup loop in the foreground."""
    import asyncio

    from clawsync.config import BootstrapConfig
    from clawsync.main import configure_logging, run_sync_loop

    config = BootstrapConfig()
    configure_logging(log_file=config.paths.sync_log_file)

    try:
        asyncio.run(run_sync_loop(config))
    except KeyboardInterrupt:
        pass


@click.command("reconcile")
@click.option("--dry-run", is_flag=True, help="Print the reconciled document instead of writing it")
def reconcile_cmd(dry_run: bool) -> None:
    """Merge environment settings into the config document."""
    import sys

    from clawsync.config import BootstrapConfig
    from clawsync.document import DocumentStore, serialize
    from clawsync.main import configure_logging
    from clawsync.reconcile import ConfigReconciler

    configure_logging(level=logging.WARNING, stream=sys.stderr)
    config = BootstrapConfig()
    document = DocumentStore(config.paths.config_file)
    data = document.load()
    report = ConfigReconciler(config).reconcile(data)

    if dry_run:
        click.echo(serialize(data))
        return

    written = document.save(data)
    for note in report.notes:
        click.echo(note)
    click.echo(f"Wrote {document.path} ({written} bytes)")


@click.command("restore")
@async_cmd
async def restore_cmd() -> None:
    """Restore config, workspace and skills from the bucket."""
    from clawsync.config import BootstrapConfig
    from clawsync.main import configure_logging, restore_state

    configure_logging()
    config = BootstrapConfig()
    config.paths.config_dir.mkdir(parents=True, exist_ok=True)

    result = await restore_state(config)
    if result is None:
        raise click.ClickException("Bucket is not configured (R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY, CF_ACCOUNT_ID)")

    source = result.config_source or "none"
    click.echo(f"Config: {source}{' (migrated legacy file)' if result.migrated_legacy else ''}")
    click.echo(f"Workspace objects: {result.workspace_objects}")
    click.echo(f"Skills objects: {result.skills_objects}")
