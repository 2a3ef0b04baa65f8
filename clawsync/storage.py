"""
Object Store Adapter — the R2 bucket as seen through rclone.

Provides an abstract ``ObjectStore`` with list / copy / sync operations keyed
by remote prefix (``openclaw/``, ``workspace/``, ``skills/``), and an
``RcloneStore`` implementation that shells out to rclone. Transfer failures
are reported as exit codes, never raised: callers decide whether a failed
transfer matters.
"""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import structlog

from clawsync.config import StorageConfig

logger = structlog.get_logger(__name__)

REMOTE_NAME = "r2"

# --s3-no-check-bucket: the bucket is provisioned out of band and the token
# may not be allowed to HEAD/create it.
DEFAULT_FLAGS = ("--transfers=16", "--fast-list", "--s3-no-check-bucket")

# Exit code reported when the tool could not run or timed out.
FAILED_TO_RUN = -1


@dataclass
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ObjectStore(ABC):
    """Abstract remote bucket namespace."""

    @abstractmethod
    async def list(self, prefix: str) -> list[str]:
        """Return the object names under *prefix* (empty on error)."""

    @abstractmethod
    async def copy(self, prefix: str, dest_dir: Path) -> int:
        """Copy everything under *prefix* into *dest_dir*. Returns the exit code."""

    @abstractmethod
    async def sync(self, src_dir: Path, prefix: str, excludes: Sequence[str] = ()) -> int:
        """Make *prefix* mirror *src_dir*, skipping *excludes*. Returns the exit code."""


class RcloneStore(ObjectStore):
    """R2 bucket accessed through an rclone S3 remote."""

    def __init__(
        self,
        config: StorageConfig,
        flags: Sequence[str] = DEFAULT_FLAGS,
    ) -> None:
        self._config = config
        self._flags = tuple(flags)
        self._binary = config.rclone_binary
        self._timeout = config.timeout

    @property
    def bucket(self) -> str:
        return self._config.bucket

    def remote_path(self, prefix: str) -> str:
        return f"{REMOTE_NAME}:{self._config.bucket}/{prefix}"

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def render_config(self) -> str:
        """The rclone.conf section for the R2 remote."""
        cfg = self._config
        return (
            f"[{REMOTE_NAME}]\n"
            "type = s3\n"
            "provider = Cloudflare\n"
            f"access_key_id = {cfg.access_key_id}\n"
            f"secret_access_key = {cfg.secret_access_key}\n"
            f"endpoint = {cfg.endpoint}\n"
            "acl = private\n"
            "no_check_bucket = true\n"
        )

    def write_config(self) -> Path:
        """Write rclone.conf (owner-readable only, it holds the secret key)."""
        path = self._config.rclone_config
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render_config())
        try:
            os.chmod(path, 0o600)
        except OSError as e:
            logger.warning("storage.chmod_failed", path=str(path), error=str(e))
        logger.info("storage.configured", bucket=self._config.bucket, path=str(path))
        return path

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list(self, prefix: str) -> list[str]:
        result = await self._run("ls", self.remote_path(prefix))
        if not result.ok:
            logger.debug(
                "storage.list_failed",
                prefix=prefix,
                returncode=result.returncode,
                stderr=result.stderr.strip()[-500:],
            )
            return []
        return parse_ls_output(result.stdout)

    async def copy(self, prefix: str, dest_dir: Path) -> int:
        Path(dest_dir).mkdir(parents=True, exist_ok=True)
        result = await self._run("copy", self.remote_path(prefix), f"{dest_dir}/", "-v")
        if not result.ok:
            logger.warning(
                "storage.copy_failed",
                prefix=prefix,
                dest=str(dest_dir),
                returncode=result.returncode,
                stderr=result.stderr.strip()[-500:],
            )
        return result.returncode

    async def sync(self, src_dir: Path, prefix: str, excludes: Sequence[str] = ()) -> int:
        exclude_args = [f"--exclude={pattern}" for pattern in excludes]
        result = await self._run("sync", f"{src_dir}/", self.remote_path(prefix), *exclude_args)
        if not result.ok:
            logger.warning(
                "storage.sync_failed",
                src=str(src_dir),
                prefix=prefix,
                returncode=result.returncode,
                stderr=result.stderr.strip()[-500:],
            )
        return result.returncode

    def build_command(self, subcommand: str, *args: str) -> list[str]:
        return [
            self._binary,
            subcommand,
            *args,
            "--config",
            str(self._config.rclone_config),
            *self._flags,
        ]

    async def _run(self, subcommand: str, *args: str) -> CommandResult:
        cmd = self.build_command(subcommand, *args)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error("storage.rclone_not_found", binary=self._binary)
            return CommandResult(FAILED_TO_RUN, stderr=f"{self._binary}: not found")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("storage.rclone_timeout", subcommand=subcommand, timeout=self._timeout)
            return CommandResult(FAILED_TO_RUN, stderr="timed out")

        return CommandResult(
            returncode=proc.returncode if proc.returncode is not None else FAILED_TO_RUN,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


def parse_ls_output(output: str) -> list[str]:
    """Parse ``rclone ls`` lines (``<size> <path>``) into object paths."""
    names: list[str] = []
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        size, _, name = stripped.partition(" ")
        if name and size.isdigit():
            names.append(name.strip())
    return names


def build_store(config: StorageConfig) -> Optional[RcloneStore]:
    """Return a configured store, or None when bucket credentials are missing."""
    if not config.is_configured:
        return None
    return RcloneStore(config)
