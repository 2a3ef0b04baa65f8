"""
Gateway Launcher — hand the process over to ``openclaw gateway``.

Also owns the two process-level checks around it: detecting an already
running gateway (so a second supervisor exits immediately) and clearing lock
files left behind by a crashed run.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, NoReturn, Optional

import structlog

from clawsync.config import GatewayConfig
from clawsync.onboard import GATEWAY_BIND
from clawsync.reconcile import GATEWAY_PORT

logger = structlog.get_logger(__name__)

GATEWAY_PROCESS_PATTERN = "openclaw gateway"


def is_gateway_running(pattern: str = GATEWAY_PROCESS_PATTERN) -> bool:
    """Return True if a process whose command line matches *pattern* is alive."""
    pgrep = shutil.which("pgrep")
    if pgrep is None:
        logger.debug("launcher.pgrep_unavailable")
        return False
    try:
        result = subprocess.run(
            [pgrep, "-f", pattern],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("launcher.pgrep_failed", error=str(e))
        return False
    return result.returncode == 0


def clear_stale_locks(lock_files: Iterable[Path]) -> list[Path]:
    """Remove lock files from a previous run. Returns the ones actually removed."""
    removed: list[Path] = []
    for path in lock_files:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("launcher.lock_remove_failed", path=str(path), error=str(e))
            continue
        removed.append(path)
        logger.info("launcher.stale_lock_removed", path=str(path))
    return removed


def build_gateway_argv(config: GatewayConfig) -> list[str]:
    argv = [
        config.binary,
        "gateway",
        "--port", str(GATEWAY_PORT),
        "--verbose",
        "--allow-unconfigured",
        "--bind", GATEWAY_BIND,
    ]
    if config.token:
        argv += ["--token", config.token]
    return argv


def exec_gateway(config: GatewayConfig, lock_files: Optional[Iterable[Path]] = None) -> NoReturn:
    """Replace the current process with the gateway. Never returns."""
    if lock_files is not None:
        clear_stale_locks(lock_files)
    argv = build_gateway_argv(config)
    logger.info(
        "launcher.starting_gateway",
        port=GATEWAY_PORT,
        auth="token" if config.token else "device-pairing",
        dev_mode=config.dev_mode,
    )
    os.execvp(argv[0], argv)
