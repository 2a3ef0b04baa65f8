"""Command-line interface for clawsync."""
