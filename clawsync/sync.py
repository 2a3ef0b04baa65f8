"""
Sync Loop — change-driven continuous backup to the bucket.

Every ``interval`` seconds the loop looks for files under the config and
workspace trees modified since the marker timestamp. Nothing changed means
nothing to do. When something did change, the configuration document is
checked first: a document that is too small or does not parse as a valid
OpenClaw config is never pushed, since ``rclone sync`` would replace a good
remote backup with it. The marker is advanced either way, so the same bad
state is not re-flagged on every cycle and a failed push is retried with the
next change.

The loop shares nothing with the startup sequence except the filesystem.
"""

from __future__ import annotations

import asyncio
import enum
import json
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import structlog

from clawsync.config import PathsConfig, SyncConfig
from clawsync.document import DocumentSource, validate_document
from clawsync.restore import CONFIG_PREFIX, SKILLS_PREFIX, WORKSPACE_PREFIX
from clawsync.storage import ObjectStore

logger = structlog.get_logger(__name__)

# Directory names never scanned for changes.
IGNORED_DIRS = frozenset({".git", "node_modules"})

CONFIG_EXCLUDES = ("*.lock", "*.log", "*.tmp", ".git/**")
WORKSPACE_EXCLUDES = ("skills/**", ".git/**", "node_modules/**")


class CycleOutcome(str, enum.Enum):
    IDLE = "idle"
    REFUSED = "refused"
    SYNCED = "synced"


@dataclass
class CycleReport:
    outcome: CycleOutcome
    changed_files: int = 0
    config_bytes: int = 0
    returncodes: dict[str, int] = field(default_factory=dict)
    problems: list[str] = field(default_factory=list)


class Marker:
    """Watermark file: its mtime is when the last completed scan started."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def touch(self, when: Optional[float] = None) -> None:
        """Advance the marker to *when* (epoch seconds), or to now."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch()
        if when is not None:
            os.utime(self._path, (when, when))

    def timestamp(self) -> float:
        """The marker's mtime, or 0.0 if it does not exist (everything is new)."""
        try:
            return self._path.stat().st_mtime
        except OSError:
            return 0.0


def iter_changed_files(root: Path, since: float) -> Iterator[Path]:
    """Yield regular files under *root* modified after *since*, skipping VCS/dependency dirs."""
    if not root.is_dir():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in IGNORED_DIRS]
        for name in filenames:
            path = Path(dirpath) / name
            try:
                if path.is_file() and path.stat().st_mtime > since:
                    yield path
            except OSError:
                continue


def check_config_health(document: DocumentSource, min_bytes: int) -> tuple[int, list[str]]:
    """Return the document size and a list of reasons it must not be pushed."""
    size = document.size()
    problems: list[str] = []
    if size < min_bytes:
        problems.append(f"config is only {size} bytes (minimum {min_bytes})")
        return size, problems
    text = document.read_text()
    if text is None:
        problems.append("config is unreadable")
        return size, problems
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        problems.append(f"config is not valid JSON: {e}")
        return size, problems
    problems.extend(validate_document(data))
    return size, problems


class SyncLoop:
    """Background backup loop with an explicit ready signal and shutdown path."""

    def __init__(
        self,
        store: ObjectStore,
        document: DocumentSource,
        paths: PathsConfig,
        config: SyncConfig,
        marker: Optional[Marker] = None,
        ready: Optional[asyncio.Event] = None,
    ) -> None:
        self._store = store
        self._document = document
        self._paths = paths
        self._interval = config.interval
        self._min_config_bytes = config.min_config_bytes
        self._marker = marker or Marker(paths.marker_file)
        self._ready = ready
        self._stop_event = asyncio.Event()
        self._cycles = 0

    @property
    def cycles(self) -> int:
        return self._cycles

    def stop(self) -> None:
        """Request the loop to exit after the current cycle."""
        self._stop_event.set()

    async def run(self) -> None:
        """Loop until ``stop()`` is called."""
        if self._ready is not None:
            # Wait for reconciliation to finish writing the document.
            await self._ready.wait()
        self._marker.touch()
        logger.info(
            "sync.loop_started",
            interval=self._interval,
            marker=str(self._marker.path),
        )
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_cycle()
            except Exception:
                # One broken cycle must not end continuous backup.
                logger.error("sync.cycle_failed", exc_info=True)
                self._marker.touch()
        logger.info("sync.loop_stopped", cycles=self._cycles)

    def scan(self) -> list[Path]:
        since = self._marker.timestamp()
        changed = list(iter_changed_files(self._paths.config_dir, since))
        changed.extend(iter_changed_files(self._paths.workspace_dir, since))
        return changed

    async def run_cycle(self) -> CycleReport:
        """One scan / check / push pass."""
        self._cycles += 1
        # Files modified from here on belong to the next cycle.
        scan_started = time.time()
        changed = self.scan()
        if not changed:
            return CycleReport(CycleOutcome.IDLE)

        size, problems = check_config_health(self._document, self._min_config_bytes)
        if problems:
            logger.warning(
                "sync.refused",
                size_bytes=size,
                changed_files=len(changed),
                problems=problems,
            )
            self._marker.touch(scan_started)
            return CycleReport(
                CycleOutcome.REFUSED,
                changed_files=len(changed),
                config_bytes=size,
                problems=problems,
            )

        logger.info("sync.uploading", changed_files=len(changed), size_bytes=size)
        started = time.monotonic()
        returncodes = await self._push()
        self._write_last_sync()
        self._marker.touch(scan_started)
        logger.info(
            "sync.complete",
            changed_files=len(changed),
            size_bytes=size,
            returncodes=returncodes,
            elapsed_s=round(time.monotonic() - started, 2),
        )
        return CycleReport(
            CycleOutcome.SYNCED,
            changed_files=len(changed),
            config_bytes=size,
            returncodes=returncodes,
        )

    async def _push(self) -> dict[str, int]:
        returncodes: dict[str, int] = {}
        paths = self._paths
        returncodes["config"] = await self._store.sync(
            paths.config_dir, CONFIG_PREFIX, CONFIG_EXCLUDES
        )
        if paths.workspace_dir.is_dir():
            returncodes["workspace"] = await self._store.sync(
                paths.workspace_dir, WORKSPACE_PREFIX, WORKSPACE_EXCLUDES
            )
        if paths.skills_dir is not None and paths.skills_dir.is_dir():
            returncodes["skills"] = await self._store.sync(paths.skills_dir, SKILLS_PREFIX)
        for name, code in returncodes.items():
            if code != 0:
                logger.warning("sync.destination_failed", destination=name, returncode=code)
        return returncodes

    def _write_last_sync(self) -> None:
        path = self._paths.last_sync_file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(datetime.now().astimezone().isoformat(timespec="seconds") + "\n")
        except OSError as e:
            logger.warning("sync.last_sync_write_failed", path=str(path), error=str(e))
