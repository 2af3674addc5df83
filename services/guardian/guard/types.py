"""
Connection Guardian data model.

These are the canonical types shared by the kinematics utility, the rescue
planner, the alert composer and the state machine. The presentation layer
only ever reads them — every mutation happens inside ConnectionGuardian.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ConnectionMode(str, Enum):
    """Transport mode of the leg that departs from a guarded connection."""

    train = "train"
    flight = "flight"
    bus = "bus"
    metro = "metro"
    ferry = "ferry"
    rideshare = "rideshare"


class RescueMode(str, Enum):
    """Recommended last-mile transport for a rescue."""

    auto = "auto"
    bike_taxi = "bike_taxi"
    cab = "cab"


class GuardianStatus(str, Enum):
    idle = "idle"
    watching = "watching"
    alert = "alert"
    pivoting = "pivoting"
    safe = "safe"


class MessageSource(str, Enum):
    phrasing = "phrasing"
    template = "template"


@dataclass(frozen=True)
class GuardedLeg:
    """One monitored connection with a hard departure deadline."""

    connection_name: str
    """Where the next leg departs, e.g. 'Chennai Central (MAS)'."""

    connection_lat: float
    connection_lng: float

    departure_time: str
    """Wall-clock 'HH:MM' (24h) of the next departure."""

    next_mode: ConnectionMode
    next_provider: str
    """Display name for messages, e.g. 'IRCTC – Vande Bharat'."""


@dataclass(frozen=True)
class JourneyLeg:
    """One booked leg of a journey, as returned by trip search."""

    mode: ConnectionMode
    provider: str
    origin: str
    destination: str
    departure_time: str
    origin_terminal: str | None = None
    destination_terminal: str | None = None


@dataclass(frozen=True)
class PositionSample:
    """A single fix from the position source."""

    lat: float
    lng: float
    timestamp: datetime
    speed_mps: float | None = None

    @property
    def speed_kmh(self) -> float:
        # Sources report missing speed as None and unknown speed as negative.
        return max(0.0, self.speed_mps or 0.0) * 3.6


@dataclass(frozen=True)
class Tick:
    """Risk snapshot computed from one position sample."""

    miss_chance_pct: int
    minutes_remaining: float
    distance_remaining_km: float
    projected_arrival_min: float
    speed_kmh: float

    @property
    def risk_band(self) -> str:
        if self.miss_chance_pct < 40:
            return "low"
        if self.miss_chance_pct < 60:
            return "elevated"
        return "high"


@dataclass(frozen=True)
class RouteStep:
    instruction: str
    distance_m: float
    duration_s: float
    maneuver_type: int


@dataclass(frozen=True)
class Route:
    """A computed path: (lat, lng) polyline, totals and turn-by-turn steps."""

    coordinates: list[tuple[float, float]]
    distance_m: float
    duration_s: float
    steps: list[RouteStep] = field(default_factory=list)
    synthetic: bool = False
    """True when this is the straight-line approximation, not a routed path."""


@dataclass(frozen=True)
class Pickup:
    lat: float
    lng: float
    label: str


@dataclass(frozen=True)
class RescuePlan:
    pickup: Pickup
    route: Route | None
    saving_min: int
    mode: RescueMode
    rescue_total_min: float


@dataclass(frozen=True)
class Alert:
    """The alert surfaced to the presentation layer. Replaced, never mutated."""

    tick: Tick
    message: str
    message_source: MessageSource
    plan: RescuePlan
    notification_title: str
    notification_body: str
    triggered_at: datetime


@dataclass
class GuardianSession:
    """
    Mutable per-journey state, owned exclusively by ConnectionGuardian.

    A new session object replaces the old one on every start/stop, so an
    in-flight alert computation can detect that it has gone stale by identity.
    """

    legs: list[GuardedLeg] = field(default_factory=list)
    current_leg_index: int = 0
    last_tick: Tick | None = None
    active_alert: Alert | None = None
    last_alert_at: datetime | None = None
    alert_in_flight: bool = False
    status: GuardianStatus = GuardianStatus.idle


@dataclass(frozen=True)
class GuardianSnapshot:
    """Read-only view of a session handed to presentation-layer listeners."""

    status: GuardianStatus
    current_tick: Tick | None
    active_alert: Alert | None
    guarded_legs: tuple[GuardedLeg, ...]
    current_leg_index: int
