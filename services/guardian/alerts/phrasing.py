"""
Alert phrasing via claude-haiku — turns a risk summary into human alert text.

Two calls per alert, issued concurrently by the guardian:
  alert_message()       — 2-3 sentence in-app message
  notification_title()  — push title, hard-capped at TITLE_MAX_CHARS

The model only sees the structured summary (numbers, names, labels). Anything
that goes wrong — no client configured, timeout, API error, empty or oversized
output — raises PhrasingError. The caller owns the template fallback
(services.guardian.alerts.composer); this module never invents text itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass

from services.guardian.alerts.composer import RESCUE_LABELS, connection_label
from services.guardian.guard.types import GuardedLeg, RescuePlan, Tick

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_TIMEOUT_S = 4.0

MESSAGE_MAX_TOKENS = 200
TITLE_MAX_TOKENS = 40
MESSAGE_MAX_CHARS = 600
TITLE_MAX_CHARS = 80

_SYSTEM_PROMPT = (
    "You write urgent but calm travel alerts for a commuter app in India. "
    "You are given a JSON summary of a traveller who may miss their next connection "
    "and a recommended rescue. Use ONLY the facts in the summary. "
    "Never invent times, places or prices. Plain text only, no markdown, no quotes."
)

_MESSAGE_INSTRUCTION = (
    "Write a 2-3 sentence in-app alert. Mention the current speed, the miss chance, "
    "the connection provider and departure time, where to get off, the recommended "
    "ride and the minutes it saves."
)

_TITLE_INSTRUCTION = (
    "Write a push notification title of at most 60 characters that states the "
    "miss chance and the connection departure time."
)


class PhrasingError(Exception):
    """Raised when the phrasing provider cannot produce usable text."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class PhrasingContext:
    """Structured risk summary — the only thing the model gets to see."""

    current_speed_kmh: float
    distance_remaining_km: float
    minutes_remaining: float
    miss_chance_pct: int
    connection_name: str
    next_provider: str
    next_mode: str
    departure_time: str
    pickup_landmark: str
    rescue_mode: str
    rescue_saving_min: int

    @classmethod
    def build(cls, tick: Tick, leg: GuardedLeg, plan: RescuePlan) -> "PhrasingContext":
        return cls(
            current_speed_kmh=round(tick.speed_kmh, 1),
            distance_remaining_km=round(tick.distance_remaining_km, 2),
            minutes_remaining=round(tick.minutes_remaining, 1),
            miss_chance_pct=tick.miss_chance_pct,
            connection_name=leg.connection_name,
            next_provider=leg.next_provider,
            next_mode=connection_label(leg),
            departure_time=leg.departure_time,
            pickup_landmark=plan.pickup.label,
            rescue_mode=RESCUE_LABELS[plan.mode],
            rescue_saving_min=plan.saving_min,
        )

    def to_prompt(self) -> str:
        lines = [f"{key}: {value}" for key, value in asdict(self).items()]
        return "\n".join(lines)


class PhrasingService:
    """
    Args:
        anthropic_client: anthropic.AsyncAnthropic instance, or None when no
                          API key is configured (every call then raises).
        model:            Model id.
        timeout_s:        Per-call budget; expiry is a PhrasingError.
    """

    def __init__(
        self,
        anthropic_client,
        model: str = DEFAULT_MODEL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._client = anthropic_client
        self._model = model
        self._timeout_s = timeout_s

    async def alert_message(self, ctx: PhrasingContext) -> str:
        return await self._complete(
            ctx, _MESSAGE_INSTRUCTION, MESSAGE_MAX_TOKENS, MESSAGE_MAX_CHARS
        )

    async def notification_title(self, ctx: PhrasingContext) -> str:
        return await self._complete(
            ctx, _TITLE_INSTRUCTION, TITLE_MAX_TOKENS, TITLE_MAX_CHARS
        )

    async def _complete(
        self,
        ctx: PhrasingContext,
        instruction: str,
        max_tokens: int,
        max_chars: int,
    ) -> str:
        if self._client is None:
            raise PhrasingError("phrasing provider not configured")

        user_message = f"{instruction}\n\n[SUMMARY_START]\n{ctx.to_prompt()}\n[SUMMARY_END]"

        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._model,
                    max_tokens=max_tokens,
                    system=_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": user_message}],
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Phrasing call timed out after %.1fs", self._timeout_s)
            raise PhrasingError("timeout") from exc
        except Exception as exc:
            logger.warning("Phrasing call failed: %s", exc)
            raise PhrasingError(f"api error: {exc}") from exc

        try:
            text = response.content[0].text.strip()
        except (IndexError, AttributeError) as exc:
            raise PhrasingError("no content blocks in response") from exc

        text = text.strip('"').strip()
        if not text:
            raise PhrasingError("empty response")
        if len(text) > max_chars:
            raise PhrasingError(f"response too long ({len(text)} chars)")
        return text
