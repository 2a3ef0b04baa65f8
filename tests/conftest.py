"""
Shared fixtures for the clawsync test suite.

Provides an isolated environment (no real credentials leak in from the
developer's shell), sandbox paths under tmp_path, and in-memory stand-ins for
the object store and the configuration document.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Sequence

import pytest
import structlog

from clawsync.config import BootstrapConfig
from clawsync.storage import ObjectStore

ENV_VARS = (
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "CF_ACCOUNT_ID",
    "R2_BUCKET_NAME",
    "CLOUDFLARE_AI_GATEWAY_API_KEY",
    "CF_AI_GATEWAY_ACCOUNT_ID",
    "CF_AI_GATEWAY_GATEWAY_ID",
    "CF_AI_GATEWAY_MODEL",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "OPENCLAW_GATEWAY_TOKEN",
    "OPENCLAW_DEV_MODE",
    "OPENCLAW_BIN",
    "CLAWSYNC_ONBOARD_TIMEOUT",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_DM_POLICY",
    "TELEGRAM_DM_ALLOW_FROM",
    "DISCORD_BOT_TOKEN",
    "DISCORD_DM_POLICY",
    "DISCORD_DM_ALLOW_FROM",
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "CLAWSYNC_CONFIG_DIR",
    "CLAWSYNC_WORKSPACE_DIR",
    "CLAWSYNC_SKILLS_DIR",
    "CLAWSYNC_STATE_DIR",
    "CLAWSYNC_RCLONE_CONFIG",
    "CLAWSYNC_RCLONE_BIN",
    "CLAWSYNC_RCLONE_TIMEOUT",
    "CLAWSYNC_SYNC_INTERVAL",
    "CLAWSYNC_SYNC_MIN_CONFIG_BYTES",
)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True, scope="session")
def route_structlog_to_stdlib() -> None:
    """Send structlog through stdlib logging so nothing prints to stdout.

    Without this, structlog's default PrintLogger writes into CliRunner's
    captured stdout and breaks commands whose output is JSON.
    """
    structlog.configure(
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every recognized variable so tests start from a blank environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def sandbox(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every clawsync path at a fresh directory tree under tmp_path."""
    monkeypatch.setenv("CLAWSYNC_CONFIG_DIR", str(tmp_path / "openclaw"))
    monkeypatch.setenv("CLAWSYNC_WORKSPACE_DIR", str(tmp_path / "clawd"))
    monkeypatch.setenv("CLAWSYNC_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("CLAWSYNC_RCLONE_CONFIG", str(tmp_path / "rclone" / "rclone.conf"))
    (tmp_path / "openclaw").mkdir()
    return tmp_path


@pytest.fixture()
def make_config(monkeypatch: pytest.MonkeyPatch):
    """Factory: set environment variables, then build a BootstrapConfig."""

    def _make(**env: str) -> BootstrapConfig:
        for name, value in env.items():
            monkeypatch.setenv(name, value)
        return BootstrapConfig()

    return _make


@pytest.fixture()
def r2_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("R2_ACCESS_KEY_ID", "ak")
    monkeypatch.setenv("R2_SECRET_ACCESS_KEY", "sk")
    monkeypatch.setenv("CF_ACCOUNT_ID", "acct")


# ---------------------------------------------------------------------------
# Stand-ins
# ---------------------------------------------------------------------------

class FakeStore(ObjectStore):
    """In-memory bucket keyed by full object path (``openclaw/openclaw.json``)."""

    def __init__(self, objects: Optional[dict[str, bytes]] = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.copies: list[tuple[str, Path]] = []
        self.syncs: list[tuple[Path, str, tuple[str, ...]]] = []
        self.sync_returncodes: dict[str, int] = {}

    async def list(self, prefix: str) -> list[str]:
        names = []
        for key in sorted(self.objects):
            if key.startswith(prefix):
                names.append(key[len(prefix):].lstrip("/") or key.rsplit("/", 1)[-1])
        return names

    async def copy(self, prefix: str, dest_dir: Path) -> int:
        self.copies.append((prefix, Path(dest_dir)))
        for key, data in self.objects.items():
            if key.startswith(prefix):
                target = Path(dest_dir) / key[len(prefix):]
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
        return 0

    async def sync(self, src_dir: Path, prefix: str, excludes: Sequence[str] = ()) -> int:
        self.syncs.append((Path(src_dir), prefix, tuple(excludes)))
        return self.sync_returncodes.get(prefix, 0)


class MemoryDocument:
    """DocumentSource backed by a string instead of a file."""

    def __init__(self, text: Optional[str] = None) -> None:
        self.text = text
        self.saves = 0

    def load(self) -> dict[str, Any]:
        if self.text is None:
            return {}
        try:
            data = json.loads(self.text)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: dict[str, Any]) -> int:
        self.text = json.dumps(data, indent=2)
        self.saves += 1
        return len(self.text.encode("utf-8"))

    def size(self) -> int:
        return len(self.text.encode("utf-8")) if self.text is not None else 0

    def read_text(self) -> Optional[str]:
        return self.text


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


def populated_document(min_bytes: int = 2000) -> dict[str, Any]:
    """A healthy-looking document comfortably above *min_bytes* when serialized."""
    doc: dict[str, Any] = {
        "gateway": {"port": 18789, "mode": "local", "trustedProxies": ["10.1.0.0"]},
        "channels": {"telegram": {"botToken": "t", "enabled": True, "dmPolicy": "pairing"}},
        "agents": {"defaults": {"workspace": "/root/clawd"}},
        "models": {"providers": {}},
        "notes": [],
    }
    while len(json.dumps(doc, indent=2)) < min_bytes + 200:
        doc["notes"].append("padding entry for a realistic document size")
    return doc


@pytest.fixture()
def store_factory():
    return FakeStore


@pytest.fixture()
def memory_document():
    return MemoryDocument


@pytest.fixture()
def populated():
    return populated_document
