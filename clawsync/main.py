"""
Main — the container startup sequence.

When the sandbox starts the container, this module:
  1. Exits immediately if a gateway is already running
  2. Restores config, workspace and skills from the bucket (if configured)
  3. Runs onboarding when no document exists yet
  4. Reconciles the document with the environment and writes it back
  5. Detaches the background sync loop
  6. Replaces itself with the gateway process

Each step lives in its own module; this file only wires them together.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional, TextIO

import structlog

from clawsync.config import BootstrapConfig
from clawsync.document import DocumentStore
from clawsync.launcher import exec_gateway, is_gateway_running
from clawsync.onboard import run_onboarding
from clawsync.reconcile import ReconcileReport, reconcile_document
from clawsync.restore import RestoreCoordinator, RestoreResult
from clawsync.storage import build_store
from clawsync.sync import SyncLoop

logger = structlog.get_logger(__name__)

_SENSITIVE_KEY_PARTS = ("token", "secret", "api_key", "apikey", "password")


def _redact_sensitive_fields(logger, method_name, event_dict):
    """
    Structlog processor that masks credential-looking fields.

    Tokens and keys flow through almost every step here; only the last four
    characters are ever written to a log.
    """
    for key, val in list(event_dict.items()):
        if key == "event" or not isinstance(val, str):
            continue
        if any(part in key.lower() for part in _SENSITIVE_KEY_PARTS):
            event_dict[key] = f"***{val[-4:]}" if len(val) > 8 else "***"
    return event_dict


_logging_configured = False


def configure_logging(
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure structlog and standard-library logging for clawsync entry points.

    Safe to call more than once; subsequent calls only add *log_file* if it
    was not attached before. Commands whose stdout is data (``reconcile
    --dry-run``) pass ``stream=sys.stderr``.
    """
    global _logging_configured  # noqa: PLW0603
    root = logging.getLogger()
    if _logging_configured:
        if log_file is not None:
            _attach_file_handler(root, log_file)
        return
    _logging_configured = True

    # basicConfig is a no-op once root has any handler, so it runs before the
    # file handler is attached and the level is set explicitly regardless.
    logging.basicConfig(format="%(message)s", level=level, stream=stream or sys.stdout)
    root.setLevel(level)
    if log_file is not None:
        _attach_file_handler(root, log_file)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_sensitive_fields,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def _attach_file_handler(root: logging.Logger, log_file: Path) -> None:
    target = str(Path(log_file).resolve())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)


# ---------------------------------------------------------------------------
# Startup steps
# ---------------------------------------------------------------------------


async def restore_state(config: BootstrapConfig) -> Optional[RestoreResult]:
    """Restore from the bucket; None when no bucket is configured."""
    store = build_store(config.storage)
    if store is None:
        logger.info("startup.storage_not_configured")
        return None
    store.write_config()
    return await RestoreCoordinator(store, config.paths).restore()


async def provision_if_needed(config: BootstrapConfig) -> bool:
    """Run onboarding when no document exists. Returns True if it ran."""
    if config.paths.config_file.is_file():
        logger.info("startup.using_existing_config", path=str(config.paths.config_file))
        return False
    logger.info("startup.no_config_found", path=str(config.paths.config_file))
    await run_onboarding(config)
    return True


def reconcile_config(config: BootstrapConfig) -> ReconcileReport:
    """Load, reconcile and atomically write the document."""
    document = DocumentStore(config.paths.config_file)
    data = document.load()
    report = reconcile_document(data, config)
    written = document.save(data)
    logger.info("startup.config_written", path=str(document.path), size_bytes=written)
    return report


def spawn_sync_loop(config: BootstrapConfig) -> Optional[int]:
    """Start ``clawsync sync-loop`` detached from this process. Returns its PID.

    The child gets its own session so it outlives the exec into the gateway.
    It logs to the sync log itself; stderr is appended there too so a crash
    leaves a traceback.
    """
    if not config.storage.is_configured:
        return None
    cmd = [sys.executable, "-m", "clawsync.cli", "sync-loop"]
    log_file = config.paths.sync_log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(log_file, "ab") as log:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=log,
            start_new_session=True,
            env=os.environ.copy(),
        )
    logger.info("startup.sync_loop_started", pid=proc.pid, log=str(log_file))
    return proc.pid


async def prepare(config: BootstrapConfig) -> None:
    """Everything before the gateway takes over: restore, provision, reconcile."""
    config.paths.config_dir.mkdir(parents=True, exist_ok=True)
    logger.info("startup.config_dir", path=str(config.paths.config_dir))
    await restore_state(config)
    await provision_if_needed(config)
    reconcile_config(config)


def startup(config: Optional[BootstrapConfig] = None) -> int:
    """Full startup sequence. Only returns (with 0) if a gateway is already running."""
    if is_gateway_running():
        logger.info("startup.gateway_already_running")
        return 0

    config = config or BootstrapConfig()
    logger.info("startup.begin", config=repr(config))
    asyncio.run(prepare(config))
    # The document is on disk; the loop can only start after this point.
    spawn_sync_loop(config)
    exec_gateway(config.gateway, config.paths.gateway_lock_files)


async def run_sync_loop(config: BootstrapConfig) -> None:
    """Run the sync loop in this process until SIGTERM/SIGINT."""
    store = build_store(config.storage)
    if store is None:
        logger.warning("sync.storage_not_configured")
        return
    sync_loop = SyncLoop(
        store,
        DocumentStore(config.paths.config_file),
        config.paths,
        config.sync,
    )
    event_loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            event_loop.add_signal_handler(sig, sync_loop.stop)
        except (NotImplementedError, RuntimeError):
            pass
    await sync_loop.run()
