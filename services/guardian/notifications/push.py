"""
Push delivery for guardian alerts.

Fire-and-forget from the guardian's point of view: send() never raises and
returns the notification id, or None when nothing was shown.

Rate limiting:
  A dedup window (default 180 s) suppresses a second prompt while the first
  is still fresh. The window lives in Redis (SET NX EX) when a client is
  available so several API workers share it; otherwise it is tracked
  in-process. Redis errors degrade to the in-process window.

Delivery:
  FCM v1 when a project id, service account key and device token are
  configured; otherwise the alert is only logged (the in-app banner still
  shows it). dismiss_all() clears the window and forgets outstanding ids.
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

PUSH_DEDUP_KEY = "guardian:push:sent:{device}"

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"


def dedup_window_below_cooldown(window_s: int, cooldown_s: float, pipeline_budget_s: float) -> int:
    """
    Cap the dedup window so a push for an alert raised after a full guardian
    cooldown is never suppressed.

    The cooldown runs from the start of the alert pipeline, the window from
    the push, which lands up to `pipeline_budget_s` later.
    """
    return max(0, min(window_s, math.floor(cooldown_s - pipeline_budget_s)))


class PushNotifier:
    def __init__(
        self,
        redis=None,
        *,
        dedup_window_s: int = 180,
        fcm_project_id: str = "",
        fcm_service_account_key: str = "",
        device_token: str = "",
        platform: str = "android",
        timeout_s: float = 10.0,
    ) -> None:
        """
        Args:
            redis:          Async Redis client (redis.asyncio compatible) or None.
            dedup_window_s: Minimum seconds between two shown notifications.
            device_token:   FCM registration token of the traveller's device.
            platform:       'ios' | 'android' | 'web' — selects platform payload.
        """
        self._redis = redis
        self._dedup_window_s = dedup_window_s
        self._fcm_project_id = fcm_project_id
        self._fcm_key = fcm_service_account_key
        self._device_token = device_token
        self._platform = platform
        self._timeout_s = timeout_s

        self._suppressed_until = 0.0
        self._outstanding: set[str] = set()

    @property
    def outstanding(self) -> frozenset[str]:
        return frozenset(self._outstanding)

    @property
    def fcm_configured(self) -> bool:
        return bool(self._fcm_project_id and self._fcm_key and self._device_token)

    async def request_permissions(self) -> bool:
        # The traveller opted in when registering the device token.
        return True

    async def send(
        self,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> str | None:
        if not await self._claim_window():
            logger.info("Push suppressed by %ds dedup window: %r", self._dedup_window_s, title)
            return None

        notification_id = secrets.token_urlsafe(8)

        if self.fcm_configured:
            delivered = await self._send_fcm(title, body, data)
            if not delivered:
                return None
        else:
            logger.info("Push (in-app only, FCM not configured): %s — %s", title, body)

        self._outstanding.add(notification_id)
        return notification_id

    async def dismiss_all(self) -> None:
        if self._outstanding:
            logger.info("Dismissing %d outstanding guardian notification(s)", len(self._outstanding))
        self._outstanding.clear()
        self._suppressed_until = 0.0

        if self._redis is None:
            return
        try:
            await self._redis.delete(self._dedup_key())
        except Exception:
            logger.warning("Push dedup DELETE failed", exc_info=True)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _dedup_key(self) -> str:
        return PUSH_DEDUP_KEY.format(device=self._device_token or "local")

    async def _claim_window(self) -> bool:
        """True if no notification was shown within the dedup window; claims it."""
        if self._dedup_window_s <= 0:
            return True

        if self._redis is not None:
            try:
                claimed = await self._redis.set(
                    self._dedup_key(), "1", nx=True, ex=self._dedup_window_s
                )
                return bool(claimed)
            except Exception:
                logger.warning("Push dedup SET failed; using in-process window", exc_info=True)

        now = time.monotonic()
        if now < self._suppressed_until:
            return False
        self._suppressed_until = now + self._dedup_window_s
        return True

    async def _send_fcm(self, title: str, body: str, data: dict[str, Any] | None) -> bool:
        message: dict[str, Any] = {
            "message": {
                "token": self._device_token,
                "notification": {"title": title, "body": body},
            }
        }
        if data:
            # FCM data values must be strings
            message["message"]["data"] = {k: str(v) for k, v in data.items()}

        if self._platform == "ios":
            message["message"]["apns"] = {
                "payload": {"aps": {"sound": "default", "interruption-level": "time-sensitive"}}
            }
        elif self._platform == "android":
            message["message"]["android"] = {
                "priority": "high",
                "notification": {"sound": "default"},
            }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.post(
                    FCM_SEND_URL.format(project_id=self._fcm_project_id),
                    json=message,
                    headers={
                        "Authorization": f"Bearer {self._fcm_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.error("FCM request error: %s", str(exc))
            return False

        if resp.status_code != 200:
            logger.warning(
                "FCM send failed status=%d body=%s", resp.status_code, resp.text[:200]
            )
            return False
        return True
