"""
Shared test fixtures for the Connection Guardian test suite.

Provides:
- factory functions for GuardedLeg, Tick, RescuePlan, PositionSample
- FakeClock: a settable journey-timezone clock for the state machine
- canonical positions relative to the Chennai Central connection
- mocked collaborators (position source, planner, phrasing, notifier)
- mock_anthropic: AsyncAnthropic-shaped mock for phrasing tests
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SENTRY_DSN", "")
os.environ.setdefault("ANTHROPIC_API_KEY", "")
os.environ.setdefault("ORS_API_KEY", "")

from services.guardian.guard.types import (  # noqa: E402
    ConnectionMode,
    GuardedLeg,
    Pickup,
    PositionSample,
    RescueMode,
    RescuePlan,
    Route,
    RouteStep,
    Tick,
)

IST = ZoneInfo("Asia/Kolkata")

# Chennai Central (MAS)
CONNECTION_LAT = 13.0827
CONNECTION_LNG = 80.2707

# ~8 km due north of the connection
FAR_LAT = 13.1547
FAR_LNG = 80.2707

# ~45 m from the connection, inside the arrived radius
NEAR_LAT = 13.0831
NEAR_LNG = 80.2707


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_leg(**overrides: Any) -> GuardedLeg:
    """Factory for GuardedLeg — the Vande Bharat out of Chennai Central by default."""
    base = {
        "connection_name": "Chennai Central (MAS)",
        "connection_lat": CONNECTION_LAT,
        "connection_lng": CONNECTION_LNG,
        "departure_time": "10:30",
        "next_mode": ConnectionMode.train,
        "next_provider": "IRCTC – Vande Bharat",
    }
    base.update(overrides)
    return GuardedLeg(**base)


def make_tick(**overrides: Any) -> Tick:
    """Factory for a high-risk Tick (scenario: 8 km out, 10 min left, 20 km/h)."""
    base = {
        "miss_chance_pct": 95,
        "minutes_remaining": 10.0,
        "distance_remaining_km": 8.0,
        "projected_arrival_min": 24.0,
        "speed_kmh": 20.0,
    }
    base.update(overrides)
    return Tick(**base)


def make_route(**overrides: Any) -> Route:
    base = {
        "coordinates": [(13.1547, 80.2707), (13.1200, 80.2650), (13.1151, 80.2747)],
        "distance_m": 850.0,
        "duration_s": 600.0,
        "steps": [
            RouteStep("Head south on Poonamallee High Rd", 850.0, 600.0, 11),
            RouteStep("Arrive at destination", 0.0, 0.0, 10),
        ],
        "synthetic": False,
    }
    base.update(overrides)
    return Route(**base)


def make_plan(**overrides: Any) -> RescuePlan:
    base = {
        "pickup": Pickup(lat=13.1151, lng=80.2747, label="Next signal junction"),
        "route": make_route(),
        "saving_min": 6,
        "mode": RescueMode.auto,
        "rescue_total_min": 18.0,
    }
    base.update(overrides)
    return RescuePlan(**base)


def make_sample(
    lat: float = FAR_LAT,
    lng: float = FAR_LNG,
    speed_kmh: float | None = 20.0,
    timestamp: datetime | None = None,
) -> PositionSample:
    return PositionSample(
        lat=lat,
        lng=lng,
        timestamp=timestamp or datetime(2026, 3, 10, 10, 20, tzinfo=IST),
        speed_mps=None if speed_kmh is None else speed_kmh / 3.6,
    )


class FakeClock:
    """Callable clock whose time only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)

    def set(self, hour: int, minute: int, second: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=second)


def _make_haiku_response(content_text: str) -> MagicMock:
    """Build a mock anthropic Messages response with given text content."""
    content_block = MagicMock()
    content_block.text = content_text

    response = MagicMock()
    response.content = [content_block]
    response.usage = MagicMock(input_tokens=120, output_tokens=40)
    return response


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    """10:20 IST on a weekday — ten minutes before the default departure."""
    return FakeClock(datetime(2026, 3, 10, 10, 20, tzinfo=IST))


@pytest.fixture
def leg() -> GuardedLeg:
    return make_leg()


@pytest.fixture
def mock_position_source() -> MagicMock:
    source = MagicMock()
    source.request_permission = AsyncMock(return_value=True)
    subscription = MagicMock()
    subscription.active = True
    source.subscribe = AsyncMock(return_value=subscription)
    return source


@pytest.fixture
def mock_planner() -> MagicMock:
    planner = MagicMock()
    planner.plan_rescue = AsyncMock(return_value=make_plan())
    return planner


@pytest.fixture
def mock_phrasing() -> MagicMock:
    phrasing = MagicMock()
    phrasing.alert_message = AsyncMock(
        return_value="You're crawling at 20 km/h. Hop off at the next signal junction "
        "and take an auto to make the 10:30 Vande Bharat."
    )
    phrasing.notification_title = AsyncMock(return_value="95% risk: 10:30 Vande Bharat")
    return phrasing


@pytest.fixture
def mock_notifier() -> MagicMock:
    notifier = MagicMock()
    notifier.request_permissions = AsyncMock(return_value=True)
    notifier.send = AsyncMock(return_value="notif-1")
    notifier.dismiss_all = AsyncMock()
    return notifier


@pytest.fixture
def mock_anthropic() -> MagicMock:
    """Haiku returns a plain alert sentence."""
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(
        return_value=_make_haiku_response("Traffic ahead. Switch to an auto now to make your train.")
    )
    return client
