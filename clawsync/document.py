"""OpenClaw configuration document — storage, merge primitives, typed views.

The document is kept as a plain JSON tree (dict / list / str / int / float /
bool / None) so the merge primitives work on any shape. The pydantic views
below only describe the sections this package knows about; they allow extra
keys so validation never drops anything written by the gateway or the UI.

Writes are atomic (tempfile + rename) so a concurrent reader sees either the
old document or the new one, never a partial write.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger(__name__)

Document = dict[str, Any]


# ---------------------------------------------------------------------------
# Merge primitives
# ---------------------------------------------------------------------------


def defaults(target: dict, src: dict) -> dict:
    """Set each key of *src* on *target* only where *target* lacks it.

    Shallow: existing keys are left alone whatever their value.
    """
    for key, value in src.items():
        if key not in target:
            target[key] = value
    return target


def deep_defaults(target: dict, src: dict) -> dict:
    """Recursively merge *src* into *target*, never overwriting existing leaves.

    A key that already exists on *target* as a non-mapping (scalar or list) is
    never descended into, even when *src* has a mapping there.
    """
    for key, value in src.items():
        if key not in target:
            target[key] = value
        elif isinstance(value, dict) and isinstance(target[key], dict):
            deep_defaults(target[key], value)
    return target


def ensure_section(parent: dict, key: str) -> dict:
    """Return ``parent[key]`` as a mapping, replacing a missing or non-mapping value."""
    current = parent.get(key)
    if not isinstance(current, dict):
        current = {}
        parent[key] = current
    return current


# ---------------------------------------------------------------------------
# Typed views of the known sections
# ---------------------------------------------------------------------------


class _View(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class GatewayAuth(_View):
    token: Optional[str] = None


class ControlUi(_View):
    allow_insecure_auth: Optional[bool] = Field(None, alias="allowInsecureAuth")


class GatewaySection(_View):
    port: Optional[int] = None
    mode: Optional[str] = None
    trusted_proxies: Optional[list[str]] = Field(None, alias="trustedProxies")
    auth: Optional[GatewayAuth] = None
    control_ui: Optional[ControlUi] = Field(None, alias="controlUi")


class ChannelSection(_View):
    enabled: Optional[bool] = None
    dm_policy: Optional[str] = Field(None, alias="dmPolicy")
    allow_from: Optional[list[Union[str, int]]] = Field(None, alias="allowFrom")


class ModelEntry(_View):
    id: str
    name: Optional[str] = None
    context_window: Optional[int] = Field(None, alias="contextWindow")
    max_tokens: Optional[int] = Field(None, alias="maxTokens")


class ProviderEntry(_View):
    base_url: Optional[str] = Field(None, alias="baseUrl")
    api_key: Optional[str] = Field(None, alias="apiKey")
    api: Optional[str] = None
    models: list[ModelEntry] = Field(default_factory=list)


class ModelsSection(_View):
    providers: dict[str, ProviderEntry] = Field(default_factory=dict)


class OpenClawDocument(_View):
    """Typed view over the whole document; unknown keys pass through untouched."""

    gateway: Optional[GatewaySection] = None
    channels: dict[str, ChannelSection] = Field(default_factory=dict)
    models: Optional[ModelsSection] = None
    agents: Optional[dict[str, Any]] = None


def validate_document(data: Any) -> list[str]:
    """Return a list of shape problems in *data*; empty means valid."""
    if not isinstance(data, dict):
        return [f"document is {type(data).__name__}, expected object"]
    try:
        OpenClawDocument.model_validate(data)
    except ValidationError as e:
        return [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
    return []


def serialize(data: Document) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class DocumentSource(Protocol):
    """Anything the reconciler and sync loop can read and write a document through."""

    def load(self) -> Document: ...

    def save(self, data: Document) -> int: ...

    def size(self) -> int: ...

    def read_text(self) -> Optional[str]: ...


class DocumentStore:
    """The configuration document on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def read_text(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    def load(self) -> Document:
        """Read the document, falling back to ``{}`` when missing or malformed."""
        text = self.read_text()
        if text is None:
            logger.info(
                "document.starting_empty",
                path=str(self._path),
                reason="unreadable" if self._path.exists() else "missing",
            )
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.info(
                "document.starting_empty",
                path=str(self._path),
                reason="malformed",
                error=str(e),
            )
            return {}
        if not isinstance(data, dict):
            logger.info(
                "document.starting_empty",
                path=str(self._path),
                reason=f"top-level {type(data).__name__}",
            )
            return {}
        logger.info(
            "document.loaded",
            path=str(self._path),
            size_bytes=len(json.dumps(data, separators=(",", ":"))),
        )
        return data

    def save(self, data: Document) -> int:
        """Atomic write with tempfile + rename. Returns the number of bytes written."""
        payload = serialize(data).encode("utf-8")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent, suffix=".tmp", prefix=".openclaw_"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return len(payload)

    def size(self) -> int:
        """Size of the document on disk in bytes, 0 if it does not exist."""
        try:
            return self._path.stat().st_size
        except OSError:
            return 0
