"""
Geo/kinematics helpers for the Connection Guardian.

Everything here is pure: no clock reads, no I/O. Callers pass `now`
explicitly so ticks are reproducible.

Miss probability model (heuristic):
  effective_minutes = minutes_remaining - SAFETY_BUFFER_MIN
  required_speed    = distance_km / effective_minutes * 60
  ratio             = required_speed / max(speed_kmh, 1)
  pct               = 100 / (1 + e^(-k * (ratio - x0)))     k=5, x0=1.0

  ratio=1.0 -> 50 %,  ratio=0.7 -> ~18 %,  ratio>=1.6 -> saturates at 95 %

The buffer, curve constants and clamp bounds are tunable policy, not derived.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

from services.guardian.guard.types import GuardedLeg, Tick

EARTH_RADIUS_KM = 6371.0

# Minutes subtracted from the time left to absorb traffic unpredictability
SAFETY_BUFFER_MIN = 7.0

# Logistic curve steepness and midpoint (ratio of required to actual speed)
LOGISTIC_K = 5.0
LOGISTIC_MIDPOINT = 1.0

MIN_MISS_PCT = 2
MAX_MISS_PCT = 95

# Closer than this counts as arrived at the connection
ARRIVED_RADIUS_KM = 0.1

# Below this speed the traveller is treated as stationary
STATIONARY_SPEED_KMH = 0.5
NO_ARRIVAL_SENTINEL_MIN = 999.0

# A deadline this far in the past is still "today"
DEADLINE_GRACE = timedelta(seconds=60)


def seconds_between(earlier: datetime, later: datetime) -> float:
    """
    Real elapsed seconds from `earlier` to `later`.

    Aware datetimes sharing one tzinfo subtract as wall time, which is off by
    the DST shift across a transition; both are compared in UTC instead.
    """
    return (later.astimezone(timezone.utc) - earlier.astimezone(timezone.utc)).total_seconds()


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives; round() would round to even."""
    return math.floor(value + 0.5)


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine great-circle distance in km."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def parse_hhmm(hhmm: str) -> tuple[int, int]:
    """
    Parse a 24h 'HH:MM' string.

    Raises ValueError on anything else ('8:5' is accepted, '24:00' is not).
    """
    try:
        hours_str, minutes_str = hhmm.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (ValueError, AttributeError) as exc:
        raise ValueError(f"Invalid HH:MM time: {hhmm!r}") from exc
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid HH:MM time: {hhmm!r}")
    return hours, minutes


def resolve_deadline(hhmm: str, now: datetime) -> datetime:
    """
    Resolve 'HH:MM' to its next occurrence relative to `now`.

    The result is a local wall time carrying `now`'s tzinfo. If today's
    occurrence is more than DEADLINE_GRACE in the past (real time) the
    connection is assumed to be tomorrow (overnight journeys).
    """
    hours, minutes = parse_hhmm(hhmm)
    deadline = now.replace(hour=hours, minute=minutes, second=0, microsecond=0, fold=0)
    if seconds_between(deadline, now) > DEADLINE_GRACE.total_seconds():
        deadline += timedelta(days=1)
    return deadline


def miss_probability(speed_kmh: float, distance_km: float, minutes_remaining: float) -> int:
    """Heuristic chance (percent, 2-95) of missing the connection."""
    effective_minutes = minutes_remaining - SAFETY_BUFFER_MIN

    if effective_minutes <= 0:
        return MAX_MISS_PCT  # already inside the buffer
    if distance_km <= ARRIVED_RADIUS_KM:
        return MIN_MISS_PCT

    required_speed = distance_km / effective_minutes * 60
    ratio = required_speed / max(speed_kmh, 1.0)

    raw = 1 / (1 + math.exp(-LOGISTIC_K * (ratio - LOGISTIC_MIDPOINT)))
    return min(MAX_MISS_PCT, max(MIN_MISS_PCT, round_half_up(raw * 100)))


def build_tick(
    user_lat: float,
    user_lng: float,
    speed_kmh: float,
    leg: GuardedLeg,
    now: datetime,
) -> Tick:
    """Compose a Tick for the traveller's position against one guarded leg."""
    deadline = resolve_deadline(leg.departure_time, now)
    minutes_remaining = max(0.0, seconds_between(now, deadline) / 60)
    remaining_km = distance_km(user_lat, user_lng, leg.connection_lat, leg.connection_lng)
    projected_arrival_min = (
        remaining_km / speed_kmh * 60
        if speed_kmh > STATIONARY_SPEED_KMH
        else NO_ARRIVAL_SENTINEL_MIN
    )

    return Tick(
        miss_chance_pct=miss_probability(speed_kmh, remaining_km, minutes_remaining),
        minutes_remaining=minutes_remaining,
        distance_remaining_km=remaining_km,
        projected_arrival_min=projected_arrival_min,
        speed_kmh=speed_kmh,
    )
