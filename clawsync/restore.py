"""
Restore Coordinator — repopulate local state from the bucket on startup.

Runs before anything else touches the config directory. The current backup
layout keeps the document under ``openclaw/openclaw.json``; older deployments
wrote ``clawdbot/clawdbot.json``, which is migrated to the current filename on
restore. Workspace and skills trees are restored independently.

Finding no backup is the normal first-run case and is only logged.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from clawsync.config import PathsConfig
from clawsync.storage import ObjectStore

logger = structlog.get_logger(__name__)

CONFIG_PREFIX = "openclaw/"
LEGACY_CONFIG_PREFIX = "clawdbot/"
WORKSPACE_PREFIX = "workspace/"
SKILLS_PREFIX = "skills/"

CONFIG_FILENAME = "openclaw.json"
LEGACY_CONFIG_FILENAME = "clawdbot.json"


@dataclass
class RestoreResult:
    """What the restore pass found and copied."""

    config_source: Optional[str] = None  # "current" | "legacy" | None
    migrated_legacy: bool = False
    workspace_objects: int = 0
    skills_objects: int = 0

    @property
    def found_backup(self) -> bool:
        return self.config_source is not None


class RestoreCoordinator:
    """Copies the latest backup into the local config/workspace/skills directories."""

    def __init__(self, store: ObjectStore, paths: PathsConfig) -> None:
        self._store = store
        self._paths = paths

    async def restore(self) -> RestoreResult:
        result = RestoreResult()
        logger.info("restore.checking_backup")
        await self._restore_config(result)
        result.workspace_objects = await self._restore_tree(
            WORKSPACE_PREFIX, self._paths.workspace_dir, "workspace"
        )
        result.skills_objects = await self._restore_tree(
            SKILLS_PREFIX, self._paths.skills_dir, "skills"
        )
        return result

    async def _has_object(self, prefix: str, filename: str) -> bool:
        names = await self._store.list(prefix + filename)
        return any(Path(name).name == filename for name in names)

    async def _restore_config(self, result: RestoreResult) -> None:
        config_dir = self._paths.config_dir

        if await self._has_object(CONFIG_PREFIX, CONFIG_FILENAME):
            logger.info("restore.config_found", prefix=CONFIG_PREFIX)
            returncode = await self._store.copy(CONFIG_PREFIX, config_dir)
            if returncode != 0:
                logger.warning("restore.config_copy_failed", returncode=returncode)
            result.config_source = "current"
            logger.info("restore.config_restored", path=str(config_dir))
            return

        if await self._has_object(LEGACY_CONFIG_PREFIX, LEGACY_CONFIG_FILENAME):
            logger.info("restore.legacy_config_found", prefix=LEGACY_CONFIG_PREFIX)
            returncode = await self._store.copy(LEGACY_CONFIG_PREFIX, config_dir)
            if returncode != 0:
                logger.warning("restore.legacy_config_copy_failed", returncode=returncode)
            result.config_source = "legacy"
            result.migrated_legacy = migrate_legacy_config(config_dir)
            logger.info(
                "restore.legacy_config_restored",
                migrated=result.migrated_legacy,
                path=str(config_dir),
            )
            return

        logger.info("restore.no_backup_found", bucket_prefixes=[CONFIG_PREFIX, LEGACY_CONFIG_PREFIX])

    async def _restore_tree(self, prefix: str, dest: Optional[Path], label: str) -> int:
        if dest is None:
            return 0
        count = len(await self._store.list(prefix))
        if count == 0:
            return 0
        logger.info("restore.tree_restoring", tree=label, count=count)
        returncode = await self._store.copy(prefix, dest)
        if returncode != 0:
            logger.warning("restore.tree_copy_failed", tree=label, returncode=returncode)
        else:
            logger.info("restore.tree_restored", tree=label, path=str(dest))
        return count


def migrate_legacy_config(config_dir: Path) -> bool:
    """Rename the legacy document to the current name unless one already exists."""
    legacy = config_dir / LEGACY_CONFIG_FILENAME
    current = config_dir / CONFIG_FILENAME
    if legacy.is_file() and not current.exists():
        legacy.rename(current)
        return True
    return False
