"""
Tests for PhrasingService — the claude-haiku alert phrasing client.

The Anthropic client is always mocked. Every failure mode must surface as
PhrasingError so the guardian can fall back to the template composer.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.guardian.alerts.phrasing import (
    MESSAGE_MAX_CHARS,
    TITLE_MAX_CHARS,
    PhrasingContext,
    PhrasingError,
    PhrasingService,
)
from services.guardian.guard.types import RescueMode
from services.guardian.tests.conftest import _make_haiku_response, make_leg, make_plan, make_tick


@pytest.fixture
def ctx() -> PhrasingContext:
    return PhrasingContext.build(
        make_tick(speed_kmh=11.64, distance_remaining_km=7.987, minutes_remaining=9.96),
        make_leg(),
        make_plan(mode=RescueMode.bike_taxi, saving_min=7),
    )


# ---------------------------------------------------------------------------
# PhrasingContext
# ---------------------------------------------------------------------------

class TestPhrasingContext:
    def test_build_rounds_and_labels(self, ctx):
        assert ctx.current_speed_kmh == 11.6
        assert ctx.distance_remaining_km == 7.99
        assert ctx.minutes_remaining == 10.0
        assert ctx.miss_chance_pct == 95
        assert ctx.next_mode == "Train"
        assert ctx.rescue_mode == "Bike Taxi (Rapido)"
        assert ctx.rescue_saving_min == 7
        assert ctx.pickup_landmark == "Next signal junction"

    def test_prompt_lists_fields(self, ctx):
        prompt = ctx.to_prompt()
        assert "miss_chance_pct: 95" in prompt
        assert "next_provider: IRCTC – Vande Bharat" in prompt
        assert "departure_time: 10:30" in prompt
        assert len(prompt.splitlines()) == 11


# ---------------------------------------------------------------------------
# PhrasingService
# ---------------------------------------------------------------------------

class TestPhrasingService:
    @pytest.mark.asyncio
    async def test_alert_message_happy_path(self, mock_anthropic, ctx):
        service = PhrasingService(mock_anthropic, model="claude-haiku-4-5-20251001")
        text = await service.alert_message(ctx)

        assert text == "Traffic ahead. Switch to an auto now to make your train."
        call = mock_anthropic.messages.create.call_args
        assert call.kwargs["model"] == "claude-haiku-4-5-20251001"
        content = call.kwargs["messages"][0]["content"]
        assert "[SUMMARY_START]" in content and "[SUMMARY_END]" in content
        assert "connection_name: Chennai Central (MAS)" in content

    @pytest.mark.asyncio
    async def test_title_strips_quotes(self, mock_anthropic, ctx):
        mock_anthropic.messages.create = AsyncMock(
            return_value=_make_haiku_response('"95% risk: 10:30 Vande Bharat"\n')
        )
        service = PhrasingService(mock_anthropic)
        assert await service.notification_title(ctx) == "95% risk: 10:30 Vande Bharat"

    @pytest.mark.asyncio
    async def test_no_client_raises(self, ctx):
        service = PhrasingService(None)
        with pytest.raises(PhrasingError, match="not configured"):
            await service.alert_message(ctx)

    @pytest.mark.asyncio
    async def test_api_error_raises(self, mock_anthropic, ctx):
        mock_anthropic.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        service = PhrasingService(mock_anthropic)
        with pytest.raises(PhrasingError, match="api error"):
            await service.alert_message(ctx)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, mock_anthropic, ctx):
        async def _slow(**kwargs):
            await asyncio.sleep(1)
            return _make_haiku_response("too late")

        mock_anthropic.messages.create = _slow
        service = PhrasingService(mock_anthropic, timeout_s=0.01)
        with pytest.raises(PhrasingError) as exc_info:
            await service.alert_message(ctx)
        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_empty_content_raises(self, mock_anthropic, ctx):
        response = MagicMock()
        response.content = []
        mock_anthropic.messages.create = AsyncMock(return_value=response)
        service = PhrasingService(mock_anthropic)
        with pytest.raises(PhrasingError, match="no content"):
            await service.alert_message(ctx)

    @pytest.mark.asyncio
    async def test_blank_text_raises(self, mock_anthropic, ctx):
        mock_anthropic.messages.create = AsyncMock(return_value=_make_haiku_response('  ""  '))
        service = PhrasingService(mock_anthropic)
        with pytest.raises(PhrasingError, match="empty"):
            await service.alert_message(ctx)

    @pytest.mark.asyncio
    async def test_oversized_title_raises(self, mock_anthropic, ctx):
        mock_anthropic.messages.create = AsyncMock(
            return_value=_make_haiku_response("x" * (TITLE_MAX_CHARS + 1))
        )
        service = PhrasingService(mock_anthropic)
        with pytest.raises(PhrasingError, match="too long"):
            await service.notification_title(ctx)

    @pytest.mark.asyncio
    async def test_oversized_message_raises(self, mock_anthropic, ctx):
        mock_anthropic.messages.create = AsyncMock(
            return_value=_make_haiku_response("y" * (MESSAGE_MAX_CHARS + 1))
        )
        service = PhrasingService(mock_anthropic)
        with pytest.raises(PhrasingError):
            await service.alert_message(ctx)
