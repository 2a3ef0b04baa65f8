"""
clawsync — OpenClaw sandbox bootstrapper.

Starts the OpenClaw gateway inside an ephemeral sandbox container and keeps
its state durable across restarts by restoring from, and continuously backing
up to, an R2 bucket.

Startup order:
    1. Restore (config, workspace, skills from the bucket)
    2. Provision (onboarding, first run only)
    3. Reconcile (environment secrets and infra settings into the document)
    4. Sync loop (detached, change-driven backups)
    5. Gateway (exec)
"""

__version__ = "0.1.0"
