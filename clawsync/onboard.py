"""
First-Run Provisioner — produce a baseline document via ``openclaw onboard``.

Only runs when no document exists after restore. Onboarding is told to skip
channels, skills and health checks; the reconciler owns those. A failed
onboarding is fatal: there is nothing sensible to reconcile or serve from.
"""

from __future__ import annotations

import asyncio

import structlog

from clawsync.config import BootstrapConfig
from clawsync.reconcile import GATEWAY_PORT

logger = structlog.get_logger(__name__)

GATEWAY_BIND = "lan"


class OnboardingError(RuntimeError):
    """Raised when ``openclaw onboard`` fails or cannot be run."""


def auth_args(config: BootstrapConfig) -> list[str]:
    """Onboarding auth flags, by precedence: AI Gateway, Anthropic, OpenAI, none."""
    ai = config.ai_gateway
    if ai.has_credentials:
        return [
            "--auth-choice", "cloudflare-ai-gateway-api-key",
            "--cloudflare-ai-gateway-account-id", str(ai.account_id),
            "--cloudflare-ai-gateway-gateway-id", str(ai.gateway_id),
            "--cloudflare-ai-gateway-api-key", str(ai.api_key),
        ]
    if config.providers.anthropic_api_key:
        return ["--auth-choice", "apiKey", "--anthropic-api-key", config.providers.anthropic_api_key]
    if config.providers.openai_api_key:
        return ["--auth-choice", "openai-api-key", "--openai-api-key", config.providers.openai_api_key]
    return []


def auth_choice(config: BootstrapConfig) -> str:
    args = auth_args(config)
    return args[1] if args else "none"


def build_onboard_command(config: BootstrapConfig) -> list[str]:
    return [
        config.gateway.binary,
        "onboard",
        "--non-interactive",
        "--accept-risk",
        "--mode", "local",
        *auth_args(config),
        "--gateway-port", str(GATEWAY_PORT),
        "--gateway-bind", GATEWAY_BIND,
        "--skip-channels",
        "--skip-skills",
        "--skip-health",
    ]


async def run_onboarding(config: BootstrapConfig) -> None:
    """Run onboarding to completion; raise OnboardingError on any failure."""
    cmd = build_onboard_command(config)
    timeout = config.gateway.onboard_timeout
    logger.info("onboard.starting", auth_choice=auth_choice(config))
    try:
        proc = await asyncio.create_subprocess_exec(*cmd)
    except FileNotFoundError as e:
        raise OnboardingError(f"{config.gateway.binary} not found") from e

    try:
        await asyncio.wait_for(proc.wait(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise OnboardingError(f"onboarding timed out after {timeout:.0f}s") from e

    if proc.returncode != 0:
        raise OnboardingError(f"onboarding exited with code {proc.returncode}")
    logger.info("onboard.completed")
