"""Tests for clawsync/restore.py — startup restore and legacy migration."""

from __future__ import annotations

import json

import pytest

from clawsync.config import PathsConfig
from clawsync.restore import RestoreCoordinator, RestoreResult, migrate_legacy_config


@pytest.fixture()
def paths(sandbox) -> PathsConfig:
    return PathsConfig(_env_file=None)


CURRENT = json.dumps({"gateway": {"port": 18789}, "source": "current"}).encode()
LEGACY = json.dumps({"gateway": {"port": 18789}, "source": "legacy"}).encode()


# ---------------------------------------------------------------------------
# Config document
# ---------------------------------------------------------------------------

class TestRestoreConfig:
    @pytest.mark.asyncio
    async def test_current_format(self, paths, store_factory) -> None:
        store = store_factory({"openclaw/openclaw.json": CURRENT})
        result = await RestoreCoordinator(store, paths).restore()
        assert result.config_source == "current"
        assert result.migrated_legacy is False
        assert json.loads(paths.config_file.read_text())["source"] == "current"

    @pytest.mark.asyncio
    async def test_current_preferred_over_legacy(self, paths, store_factory) -> None:
        store = store_factory(
            {"openclaw/openclaw.json": CURRENT, "clawdbot/clawdbot.json": LEGACY}
        )
        result = await RestoreCoordinator(store, paths).restore()
        assert result.config_source == "current"
        assert [prefix for prefix, _ in store.copies] == ["openclaw/"]
        assert not paths.legacy_config_file.exists()

    @pytest.mark.asyncio
    async def test_legacy_migrated(self, paths, store_factory) -> None:
        store = store_factory({"clawdbot/clawdbot.json": LEGACY})
        result = await RestoreCoordinator(store, paths).restore()
        assert result.config_source == "legacy"
        assert result.migrated_legacy is True
        assert json.loads(paths.config_file.read_text())["source"] == "legacy"
        assert not paths.legacy_config_file.exists()

    @pytest.mark.asyncio
    async def test_other_objects_under_prefix_ignored(self, paths, store_factory) -> None:
        # Something under openclaw/ but not the document itself is not a backup.
        store = store_factory({"openclaw/openclaw.json.bak": b"{}"})
        result = await RestoreCoordinator(store, paths).restore()
        assert result.config_source is None

    @pytest.mark.asyncio
    async def test_no_backup(self, paths, fake_store) -> None:
        result = await RestoreCoordinator(fake_store, paths).restore()
        assert result == RestoreResult()
        assert result.found_backup is False
        assert fake_store.copies == []
        assert not paths.config_file.exists()


class TestMigrateLegacyConfig:
    def test_renames(self, tmp_path) -> None:
        (tmp_path / "clawdbot.json").write_text("{}")
        assert migrate_legacy_config(tmp_path) is True
        assert (tmp_path / "openclaw.json").read_text() == "{}"
        assert not (tmp_path / "clawdbot.json").exists()

    def test_does_not_overwrite_current(self, tmp_path) -> None:
        (tmp_path / "clawdbot.json").write_text('{"legacy": true}')
        (tmp_path / "openclaw.json").write_text('{"current": true}')
        assert migrate_legacy_config(tmp_path) is False
        assert (tmp_path / "openclaw.json").read_text() == '{"current": true}'

    def test_nothing_to_migrate(self, tmp_path) -> None:
        assert migrate_legacy_config(tmp_path) is False


# ---------------------------------------------------------------------------
# Workspace and skills trees
# ---------------------------------------------------------------------------

class TestRestoreTrees:
    @pytest.mark.asyncio
    async def test_workspace_and_skills(self, paths, store_factory) -> None:
        store = store_factory(
            {
                "workspace/IDENTITY.md": b"me",
                "workspace/memory/2026-01-01.md": b"notes",
                "skills/weather/SKILL.md": b"skill",
            }
        )
        result = await RestoreCoordinator(store, paths).restore()
        assert result.config_source is None
        assert result.workspace_objects == 2
        assert result.skills_objects == 1
        assert (paths.workspace_dir / "IDENTITY.md").read_bytes() == b"me"
        assert (paths.workspace_dir / "memory" / "2026-01-01.md").read_bytes() == b"notes"
        assert (paths.skills_dir / "weather" / "SKILL.md").read_bytes() == b"skill"

    @pytest.mark.asyncio
    async def test_empty_trees_not_copied(self, paths, store_factory) -> None:
        store = store_factory({"openclaw/openclaw.json": CURRENT})
        result = await RestoreCoordinator(store, paths).restore()
        assert result.workspace_objects == 0
        assert result.skills_objects == 0
        assert [prefix for prefix, _ in store.copies] == ["openclaw/"]
