"""Tests for clawsync/onboard.py — first-run provisioning."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from clawsync.onboard import (
    OnboardingError,
    auth_args,
    auth_choice,
    build_onboard_command,
    run_onboarding,
)

AI_CREDS = {
    "CLOUDFLARE_AI_GATEWAY_API_KEY": "cfk",
    "CF_AI_GATEWAY_ACCOUNT_ID": "acc",
    "CF_AI_GATEWAY_GATEWAY_ID": "gw",
}


# ---------------------------------------------------------------------------
# Auth precedence
# ---------------------------------------------------------------------------

class TestAuthArgs:
    def test_ai_gateway_wins(self, make_config) -> None:
        config = make_config(ANTHROPIC_API_KEY="ant", OPENAI_API_KEY="oai", **AI_CREDS)
        assert auth_args(config) == [
            "--auth-choice", "cloudflare-ai-gateway-api-key",
            "--cloudflare-ai-gateway-account-id", "acc",
            "--cloudflare-ai-gateway-gateway-id", "gw",
            "--cloudflare-ai-gateway-api-key", "cfk",
        ]

    def test_partial_ai_gateway_falls_through(self, make_config) -> None:
        config = make_config(
            CLOUDFLARE_AI_GATEWAY_API_KEY="cfk",
            CF_AI_GATEWAY_ACCOUNT_ID="acc",
            ANTHROPIC_API_KEY="ant",
        )
        assert auth_args(config) == ["--auth-choice", "apiKey", "--anthropic-api-key", "ant"]

    def test_anthropic_before_openai(self, make_config) -> None:
        config = make_config(ANTHROPIC_API_KEY="ant", OPENAI_API_KEY="oai")
        assert auth_choice(config) == "apiKey"

    def test_openai(self, make_config) -> None:
        config = make_config(OPENAI_API_KEY="oai")
        assert auth_args(config) == ["--auth-choice", "openai-api-key", "--openai-api-key", "oai"]

    def test_none(self, make_config) -> None:
        config = make_config()
        assert auth_args(config) == []
        assert auth_choice(config) == "none"


class TestBuildOnboardCommand:
    def test_shape(self, make_config) -> None:
        cmd = build_onboard_command(make_config(ANTHROPIC_API_KEY="ant"))
        assert cmd[:6] == ["openclaw", "onboard", "--non-interactive", "--accept-risk", "--mode", "local"]
        assert cmd[6:10] == ["--auth-choice", "apiKey", "--anthropic-api-key", "ant"]
        assert cmd[10:] == [
            "--gateway-port", "18789",
            "--gateway-bind", "lan",
            "--skip-channels",
            "--skip-skills",
            "--skip-health",
        ]

    def test_no_auth(self, make_config) -> None:
        cmd = build_onboard_command(make_config())
        assert "--auth-choice" not in cmd


# ---------------------------------------------------------------------------
# run_onboarding
# ---------------------------------------------------------------------------

def _proc(returncode: int) -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestRunOnboarding:
    @pytest.mark.asyncio
    async def test_success(self, make_config) -> None:
        config = make_config(OPENAI_API_KEY="oai")
        with patch(
            "clawsync.onboard.asyncio.create_subprocess_exec",
            AsyncMock(return_value=_proc(0)),
        ) as mock_exec:
            await run_onboarding(config)
        assert list(mock_exec.call_args.args) == build_onboard_command(config)

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, make_config) -> None:
        with patch(
            "clawsync.onboard.asyncio.create_subprocess_exec",
            AsyncMock(return_value=_proc(2)),
        ):
            with pytest.raises(OnboardingError, match="code 2"):
                await run_onboarding(make_config())

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, make_config) -> None:
        with patch(
            "clawsync.onboard.asyncio.create_subprocess_exec",
            AsyncMock(side_effect=FileNotFoundError),
        ):
            with pytest.raises(OnboardingError, match="not found"):
                await run_onboarding(make_config())

    @pytest.mark.asyncio
    async def test_timeout_kills_and_raises(self, make_config) -> None:
        proc = _proc(0)
        proc.wait = AsyncMock(side_effect=[asyncio.TimeoutError, -9])
        with patch("clawsync.onboard.asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(OnboardingError, match="timed out"):
                await run_onboarding(make_config())
        proc.kill.assert_called_once()
