"""
Template alert text — the guaranteed fallback when phrasing is unavailable.

Pure string formatting: no I/O, never raises for valid ticks/legs.
"""

from __future__ import annotations

from services.guardian.guard.types import GuardedLeg, RescueMode, Tick

CONNECTION_LABELS: dict[str, str] = {
    "train": "Train",
    "flight": "Flight",
    "bus": "Bus",
    "metro": "Metro",
    "ferry": "Ferry",
    "rideshare": "Cab",
}

RESCUE_LABELS: dict[RescueMode, str] = {
    RescueMode.auto: "Auto-Rickshaw",
    RescueMode.bike_taxi: "Bike Taxi (Rapido)",
    RescueMode.cab: "Cab (Ola/Uber)",
}

# Push bodies beyond this get cut by most launchers
NOTIFICATION_BODY_MAX = 200


def connection_label(leg: GuardedLeg) -> str:
    return CONNECTION_LABELS.get(leg.next_mode.value, "connection")


def short_notification(tick: Tick, leg: GuardedLeg, saving_min: int, mode: RescueMode) -> str:
    """One-line push body (~120 chars)."""
    return (
        f"⚠️ {tick.miss_chance_pct}% chance of missing your {connection_label(leg)} "
        f"at {leg.departure_time}. Get off now → {RESCUE_LABELS[mode]} can save "
        f"~{saving_min} min. Tap to see rescue route."
    )


def fallback_title(tick: Tick, leg: GuardedLeg) -> str:
    return f"⚠️ {tick.miss_chance_pct}% chance of missing {leg.next_mode.value} at {leg.departure_time}"


def fallback_message(
    tick: Tick,
    leg: GuardedLeg,
    pickup_label: str,
    mode: RescueMode,
    saving_min: int,
) -> str:
    """Full in-app alert text."""
    return (
        f"Traffic detected on your route. At your current speed ({round(tick.speed_kmh)} km/h), "
        f"you have a {tick.miss_chance_pct}% chance of missing the {connection_label(leg)} "
        f"({leg.next_provider}) departing at {leg.departure_time}. "
        f"Get off at the {pickup_label}. A {RESCUE_LABELS[mode]} through the side lane "
        f"can save ~{saving_min} minutes. Tap \"Navigate Rescue Path\" to start."
    )


def truncate_body(text: str, limit: int = NOTIFICATION_BODY_MAX) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"
