"""
Config Reconciler — merge the environment into the OpenClaw document.

Onboarding produces a baseline document once; after that the gateway, its
control UI and `config.patch` calls all edit the same file, and the file is
restored from the bucket on every container start. Reconciliation therefore
follows one rule: secrets always overwrite, structure only defaults.

  - Infrastructure facts (gateway port, mode, trusted proxies) are forced.
  - Volatile leaves (gateway token, provider API key, channel tokens) are
    overwritten on every run so rotation takes effect.
  - Everything else is only filled in when absent. A channel section that
    already exists keeps its policy fields exactly as the user left them.

Rules run in a fixed order; a section whose environment inputs are only
partially present is skipped entirely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from clawsync.config import BootstrapConfig
from clawsync.document import Document, deep_defaults, ensure_section

logger = structlog.get_logger(__name__)

GATEWAY_PORT = 18789
GATEWAY_MODE = "local"
TRUSTED_PROXIES = ["10.1.0.0"]

DEFAULT_DM_POLICY = "pairing"

AI_GATEWAY_BASE = "https://gateway.ai.cloudflare.com/v1"
WORKERS_AI_BASE = "https://api.cloudflare.com/client/v4/accounts"
AI_GATEWAY_PROVIDER_PREFIX = "cf-ai-gw-"
AI_GATEWAY_CONTEXT_WINDOW = 131072
AI_GATEWAY_MAX_TOKENS = 8192


@dataclass
class ReconcileReport:
    """What a reconciliation pass did, for logging and tests."""

    notes: list[str] = field(default_factory=list)
    sections: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def note(self, section: str, message: str) -> None:
        if section not in self.sections:
            self.sections.append(section)
        self.notes.append(message)

    def skip(self, section: str, message: str) -> None:
        self.skipped.append(section)
        self.notes.append(message)


def api_dialect(provider: str) -> str:
    """Map an AI Gateway provider slug to the OpenClaw API dialect."""
    return "anthropic-messages" if provider == "anthropic" else "openai-completions"


def ai_gateway_base_url(
    provider: str,
    account_id: Optional[str],
    gateway_id: Optional[str],
    direct_account_id: Optional[str],
) -> Optional[str]:
    """Build the base URL for *provider*, or None if the inputs are insufficient."""
    if account_id and gateway_id:
        url = f"{AI_GATEWAY_BASE}/{account_id}/{gateway_id}/{provider}"
        if provider == "workers-ai":
            url += "/v1"
        return url
    if provider == "workers-ai" and direct_account_id:
        return f"{WORKERS_AI_BASE}/{direct_account_id}/ai/v1"
    return None


def _is_absent(value: Any) -> bool:
    # An empty mapping still counts as present.
    return not isinstance(value, dict)


class ConfigReconciler:
    """Applies environment-derived settings to a document in a single pass."""

    def __init__(self, config: BootstrapConfig) -> None:
        self._config = config

    def reconcile(self, doc: Document) -> ReconcileReport:
        """Mutate *doc* in place and return a report of what changed."""
        report = ReconcileReport()
        self._apply_gateway(doc, report)
        ensure_section(doc, "channels")
        self._apply_ai_gateway_model(doc, report)
        self._apply_telegram(doc, report)
        self._apply_discord(doc, report)
        self._apply_slack(doc, report)
        return report

    # ------------------------------------------------------------------
    # Gateway
    # ------------------------------------------------------------------

    def _apply_gateway(self, doc: Document, report: ReconcileReport) -> None:
        gateway = ensure_section(doc, "gateway")
        # Facts about this sandbox, not user preferences.
        gateway["port"] = GATEWAY_PORT
        gateway["mode"] = GATEWAY_MODE
        gateway["trustedProxies"] = list(TRUSTED_PROXIES)
        report.note("gateway", f"Gateway: port={GATEWAY_PORT} mode={GATEWAY_MODE}")

        token = self._config.gateway.token
        if token:
            ensure_section(gateway, "auth")["token"] = token
            report.note("gateway", "Gateway: auth token injected")

        if self._config.gateway.dev_mode:
            ensure_section(gateway, "controlUi")["allowInsecureAuth"] = True
            report.note("gateway", "Gateway: dev mode, insecure control UI auth allowed")

    # ------------------------------------------------------------------
    # AI Gateway model override
    # ------------------------------------------------------------------

    def _apply_ai_gateway_model(self, doc: Document, report: ReconcileReport) -> None:
        ai = self._config.ai_gateway
        raw = ai.model
        if not raw:
            return

        provider, sep, model_id = raw.partition("/")
        if not sep or not provider or not model_id:
            logger.warning("reconcile.ai_gateway_model_malformed", value=raw)
            report.skip("models", f"CF_AI_GATEWAY_MODEL={raw!r} is not <provider>/<model-id>")
            return

        base_url = ai_gateway_base_url(
            provider, ai.account_id, ai.gateway_id, self._config.storage.account_id
        )
        if not base_url or not ai.api_key:
            logger.warning(
                "reconcile.ai_gateway_incomplete",
                has_base_url=bool(base_url),
                has_api_key=bool(ai.api_key),
            )
            report.skip(
                "models",
                "CF_AI_GATEWAY_MODEL set but missing required config "
                "(account ID, gateway ID, or API key)",
            )
            return

        provider_name = f"{AI_GATEWAY_PROVIDER_PREFIX}{provider}"
        providers = ensure_section(ensure_section(doc, "models"), "providers")
        existing = providers.get(provider_name)
        if _is_absent(existing):
            providers[provider_name] = {
                "baseUrl": base_url,
                "apiKey": ai.api_key,
                "api": api_dialect(provider),
                "models": [
                    {
                        "id": model_id,
                        "name": model_id,
                        "contextWindow": AI_GATEWAY_CONTEXT_WINDOW,
                        "maxTokens": AI_GATEWAY_MAX_TOKENS,
                    }
                ],
            }
            report.note(
                "models",
                f"AI Gateway model override: provider={provider_name} "
                f"model={model_id} via {base_url}",
            )
        else:
            # Rotation only; the model list may have been edited since.
            existing["apiKey"] = ai.api_key
            report.note("models", "AI Gateway provider exists, updated API key only")

        agent_defaults = ensure_section(ensure_section(doc, "agents"), "defaults")
        primary = f"{provider_name}/{model_id}"
        current = agent_defaults.get("model")
        if not current:
            agent_defaults["model"] = {"primary": primary}
            report.note("agents", f"Default model set to {primary}")
        elif isinstance(current, dict) and not current.get("primary"):
            current["primary"] = primary
            report.note("agents", f"Default model set to {primary}")

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def _channel(self, doc: Document, name: str) -> tuple[dict, bool]:
        """Return the channel section and whether it had to be created."""
        channels = ensure_section(doc, "channels")
        is_new = _is_absent(channels.get(name))
        return ensure_section(channels, name), is_new

    def _apply_telegram(self, doc: Document, report: ReconcileReport) -> None:
        tg = self._config.telegram
        if not tg.bot_token:
            return

        section, is_new = self._channel(doc, "telegram")
        section["botToken"] = tg.bot_token
        section["enabled"] = True

        if not is_new:
            report.note("channels", "Telegram: updated token, preserved existing settings")
            return

        dm_policy = tg.dm_policy or DEFAULT_DM_POLICY
        policy: dict[str, Any] = {"dmPolicy": dm_policy}
        if tg.allow_from:
            policy["allowFrom"] = tg.allow_from
        elif dm_policy == "open":
            policy["allowFrom"] = ["*"]
        deep_defaults(section, policy)
        report.note("channels", f"Telegram: new channel configured (dmPolicy={dm_policy})")

    def _apply_discord(self, doc: Document, report: ReconcileReport) -> None:
        dc = self._config.discord
        if not dc.bot_token:
            return

        section, is_new = self._channel(doc, "discord")
        section["token"] = dc.bot_token
        section["enabled"] = True

        if not is_new:
            report.note("channels", "Discord: updated token, preserved existing settings")
            return

        dm_policy = dc.dm_policy or DEFAULT_DM_POLICY
        # Discord nests DM policy under "dm", unlike Telegram.
        dm: dict[str, Any] = {"policy": dm_policy}
        if dc.allow_from:
            dm["allowFrom"] = dc.allow_from
        elif dm_policy == "open":
            dm["allowFrom"] = ["*"]
        deep_defaults(section, {"dm": dm})
        report.note("channels", f"Discord: new channel configured (dmPolicy={dm_policy})")

    def _apply_slack(self, doc: Document, report: ReconcileReport) -> None:
        slack = self._config.slack
        if not slack.is_configured:
            if slack.bot_token or slack.app_token:
                report.skip("channels", "Slack: both SLACK_BOT_TOKEN and SLACK_APP_TOKEN required")
            return

        section, is_new = self._channel(doc, "slack")
        section["botToken"] = slack.bot_token
        section["appToken"] = slack.app_token
        section["enabled"] = True

        if is_new:
            report.note("channels", "Slack: new channel configured")
        else:
            report.note("channels", "Slack: updated tokens, preserved existing settings")


def reconcile_document(doc: Document, config: BootstrapConfig) -> ReconcileReport:
    """Run every reconciliation rule on *doc* and log the outcome."""
    report = ConfigReconciler(config).reconcile(doc)
    for line in report.notes:
        logger.info("reconcile.note", note=line)
    logger.info(
        "reconcile.complete",
        sections=report.sections,
        skipped=report.skipped,
    )
    return report
