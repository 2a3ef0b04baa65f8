"""Allow ``python -m clawsync.cli`` (used to detach the sync loop)."""

from clawsync.cli.app import cli

if __name__ == "__main__":
    cli()
