# clawsync/config.py
"""
Configuration for the sandbox bootstrapper.

All configuration flows through this module. Values are loaded from environment
variables (optionally via a .env file) and validated with Pydantic. The sandbox
control plane injects secrets as environment variables on every container
start, so this is also the surface the reconciler reads credentials from.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

# Resolve .env relative to the project root (one level above clawsync/),
# so the config works regardless of the current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

_SETTINGS = {
    "env_file": _ENV_FILE,
    "extra": "ignore",
    "populate_by_name": True,
    "env_ignore_empty": True,
}


def split_csv(value: Optional[str]) -> list[str]:
    """Split a comma-separated env value into stripped, non-empty items.

    Accepts:
      - None / empty str     → []
      - A bare value         → ["value"]
      - Comma-separated str  → ["a", "b"]
    """
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    return value


class StorageConfig(BaseSettings):
    """Credentials and options for the R2 backup bucket."""

    access_key_id: Optional[str] = Field(None, alias="R2_ACCESS_KEY_ID")
    secret_access_key: Optional[str] = Field(None, alias="R2_SECRET_ACCESS_KEY")
    account_id: Optional[str] = Field(None, alias="CF_ACCOUNT_ID")
    bucket: str = Field("moltbot-data", alias="R2_BUCKET_NAME")
    # Where the generated rclone config is written.
    rclone_config: Path = Field(
        Path("/root/.config/rclone/rclone.conf"), alias="CLAWSYNC_RCLONE_CONFIG"
    )
    rclone_binary: str = Field("rclone", alias="CLAWSYNC_RCLONE_BIN")
    # Per-invocation timeout for a single rclone command (seconds).
    timeout: float = Field(600.0, alias="CLAWSYNC_RCLONE_TIMEOUT")

    model_config = _SETTINGS

    @model_validator(mode="after")
    def normalize(self) -> "StorageConfig":
        self.access_key_id = _strip_or_none(self.access_key_id)
        self.secret_access_key = _strip_or_none(self.secret_access_key)
        self.account_id = _strip_or_none(self.account_id)
        self.bucket = self.bucket.strip() or "moltbot-data"
        self.timeout = max(1.0, float(self.timeout))
        return self

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key and self.account_id)

    @property
    def endpoint(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"


class AIGatewayConfig(BaseSettings):
    """Cloudflare AI Gateway credentials and the optional model override."""

    api_key: Optional[str] = Field(None, alias="CLOUDFLARE_AI_GATEWAY_API_KEY")
    account_id: Optional[str] = Field(None, alias="CF_AI_GATEWAY_ACCOUNT_ID")
    gateway_id: Optional[str] = Field(None, alias="CF_AI_GATEWAY_GATEWAY_ID")
    # Format: "<provider>/<model-id>", e.g. "anthropic/claude-sonnet-4-5".
    model: Optional[str] = Field(None, alias="CF_AI_GATEWAY_MODEL")

    model_config = _SETTINGS

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.account_id and self.gateway_id)


class ProviderKeysConfig(BaseSettings):
    """Direct provider API keys, used only for first-run onboarding."""

    anthropic_api_key: Optional[str] = Field(None, alias="ANTHROPIC_API_KEY")
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")

    model_config = _SETTINGS


class GatewayConfig(BaseSettings):
    """How the OpenClaw gateway is authenticated and launched."""

    token: Optional[str] = Field(None, alias="OPENCLAW_GATEWAY_TOKEN")
    dev_mode_flag: str = Field("false", alias="OPENCLAW_DEV_MODE")
    binary: str = Field("openclaw", alias="OPENCLAW_BIN")
    onboard_timeout: float = Field(300.0, alias="CLAWSYNC_ONBOARD_TIMEOUT")

    model_config = _SETTINGS

    @model_validator(mode="after")
    def normalize(self) -> "GatewayConfig":
        self.token = _strip_or_none(self.token)
        self.onboard_timeout = max(1.0, float(self.onboard_timeout))
        return self

    @property
    def dev_mode(self) -> bool:
        # Only the literal "true" enables insecure control-UI auth.
        return self.dev_mode_flag.strip().lower() == "true"


class TelegramConfig(BaseSettings):
    """Telegram channel credentials and first-time DM policy."""

    bot_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    dm_policy: Optional[str] = Field(None, alias="TELEGRAM_DM_POLICY")
    allow_from_raw: Optional[str] = Field(None, alias="TELEGRAM_DM_ALLOW_FROM")

    model_config = _SETTINGS

    @property
    def allow_from(self) -> list[str]:
        return split_csv(self.allow_from_raw)


class DiscordConfig(BaseSettings):
    """Discord channel credentials and first-time DM policy."""

    bot_token: Optional[str] = Field(None, alias="DISCORD_BOT_TOKEN")
    dm_policy: Optional[str] = Field(None, alias="DISCORD_DM_POLICY")
    allow_from_raw: Optional[str] = Field(None, alias="DISCORD_DM_ALLOW_FROM")

    model_config = _SETTINGS

    @property
    def allow_from(self) -> list[str]:
        return split_csv(self.allow_from_raw)


class SlackConfig(BaseSettings):
    """Slack channel credentials (Socket Mode needs both tokens)."""

    bot_token: Optional[str] = Field(None, alias="SLACK_BOT_TOKEN")
    app_token: Optional[str] = Field(None, alias="SLACK_APP_TOKEN")

    model_config = _SETTINGS

    @property
    def is_configured(self) -> bool:
        return bool(self.bot_token and self.app_token)


class PathsConfig(BaseSettings):
    """Local filesystem layout inside the sandbox container."""

    config_dir: Path = Field(Path("/root/.openclaw"), alias="CLAWSYNC_CONFIG_DIR")
    workspace_dir: Path = Field(Path("/root/clawd"), alias="CLAWSYNC_WORKSPACE_DIR")
    skills_dir: Optional[Path] = Field(None, alias="CLAWSYNC_SKILLS_DIR")
    # Scratch state shared between the startup sequence and the sync loop.
    state_dir: Path = Field(Path("/tmp"), alias="CLAWSYNC_STATE_DIR")

    model_config = _SETTINGS

    @model_validator(mode="after")
    def derive_paths(self) -> "PathsConfig":
        """Skills live inside the workspace unless explicitly overridden."""
        if self.skills_dir is None:
            self.skills_dir = self.workspace_dir / "skills"
        return self

    @property
    def config_file(self) -> Path:
        return self.config_dir / "openclaw.json"

    @property
    def legacy_config_file(self) -> Path:
        return self.config_dir / "clawdbot.json"

    @property
    def last_sync_file(self) -> Path:
        return self.state_dir / ".last-sync"

    @property
    def marker_file(self) -> Path:
        return self.state_dir / ".last-sync-marker"

    @property
    def sync_log_file(self) -> Path:
        return self.state_dir / "r2-sync.log"

    @property
    def gateway_lock_files(self) -> list[Path]:
        return [Path("/tmp/openclaw-gateway.lock"), self.config_dir / "gateway.lock"]


class SyncConfig(BaseSettings):
    """Configuration for the background backup loop."""

    interval: float = Field(30.0, alias="CLAWSYNC_SYNC_INTERVAL")
    # A populated document is typically 3KB+; a skeleton is ~600 bytes.
    min_config_bytes: int = Field(2000, alias="CLAWSYNC_SYNC_MIN_CONFIG_BYTES")

    model_config = _SETTINGS

    @model_validator(mode="after")
    def normalize_limits(self) -> "SyncConfig":
        self.interval = max(1.0, float(self.interval))
        self.min_config_bytes = max(0, int(self.min_config_bytes))
        return self


class BootstrapConfig:
    """
    Master configuration that composes all subsystem configs.

    Every component receives its config from here; nothing else reads the
    environment directly.
    """

    def __init__(self):
        self.storage = StorageConfig()
        self.ai_gateway = AIGatewayConfig()
        self.providers = ProviderKeysConfig()
        self.gateway = GatewayConfig()
        self.telegram = TelegramConfig()
        self.discord = DiscordConfig()
        self.slack = SlackConfig()
        self.paths = PathsConfig()
        self.sync = SyncConfig()

    def __repr__(self) -> str:
        return (
            f"BootstrapConfig(bucket={self.storage.bucket}, "
            f"storage={'on' if self.storage.is_configured else 'off'}, "
            f"config_dir={self.paths.config_dir}, "
            f"sync_interval={self.sync.interval}s)"
        )
