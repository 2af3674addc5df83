"""
RescuePlanner — builds the alternate last-mile plan once a connection is at risk.

Plan shape:
  1. Pickup point: 55 % of the way to the connection, nudged sideways by a
     fixed ~400 m so the hand-off lands on a side street rather than the
     main-road midpoint. No POI lookup — the label is generic.
  2. Walking route from the traveller to the pickup (RoutingService).
  3. Rescue estimate = walk + PICKUP_WAIT_MIN + pickup->connection at
     LAST_MILE_SPEED_KMH (auto / bike taxi through side lanes).
  4. Saving = projected arrival on the current path - rescue estimate (>= 0).
  5. Mode by distance to the connection: bike taxi when close, cab when far.

plan_rescue() never raises: a routing failure only drops the route, and the
saving collapses to 0 because the rescue estimate becomes the current projection.
"""

from __future__ import annotations

import logging
import math

from services.guardian.geo.kinematics import distance_km, round_half_up
from services.guardian.guard.types import (
    GuardedLeg,
    Pickup,
    RescueMode,
    RescuePlan,
    Route,
    Tick,
)

logger = logging.getLogger(__name__)

PICKUP_FRACTION = 0.55
PICKUP_OFFSET_DEG = 0.004  # ~400 m
PICKUP_LABEL = "Next signal junction"
FALLBACK_PICKUP_LABEL = "next junction"

WALK_PROFILE = "foot-walking"
PICKUP_WAIT_MIN = 5.0
LAST_MILE_SPEED_KMH = 15.0

DEFAULT_BIKE_TAXI_MAX_KM = 2.0
DEFAULT_CAB_MIN_KM = 8.0


def derive_pickup(user_lat: float, user_lng: float, dest_lat: float, dest_lng: float) -> Pickup:
    """Deterministic hand-off point between the traveller and the connection."""
    d_lat = dest_lat - user_lat
    d_lng = dest_lng - user_lng
    lat = user_lat + PICKUP_FRACTION * d_lat
    lng = user_lng + PICKUP_FRACTION * d_lng

    # Unit perpendicular (rotated clockwise) to the direction of travel
    norm = math.hypot(d_lat, d_lng)
    if norm > 0:
        lat += PICKUP_OFFSET_DEG * d_lng / norm
        lng -= PICKUP_OFFSET_DEG * d_lat / norm

    return Pickup(lat=lat, lng=lng, label=PICKUP_LABEL)


def select_rescue_mode(
    distance_remaining_km: float,
    bike_taxi_max_km: float = DEFAULT_BIKE_TAXI_MAX_KM,
    cab_min_km: float = DEFAULT_CAB_MIN_KM,
) -> RescueMode:
    if distance_remaining_km < bike_taxi_max_km:
        return RescueMode.bike_taxi
    if distance_remaining_km > cab_min_km:
        return RescueMode.cab
    return RescueMode.auto


def fallback_plan(user_lat: float, user_lng: float) -> RescuePlan:
    """Plan used when planning itself blew up: stay put, no route, no promise."""
    return RescuePlan(
        pickup=Pickup(lat=user_lat, lng=user_lng, label=FALLBACK_PICKUP_LABEL),
        route=None,
        saving_min=0,
        mode=RescueMode.auto,
        rescue_total_min=0.0,
    )


class RescuePlanner:
    """
    Usage:
        planner = RescuePlanner(routing=RoutingService(api_key=...))
        plan = await planner.plan_rescue(lat, lng, leg, tick)
    """

    def __init__(
        self,
        routing,
        bike_taxi_max_km: float = DEFAULT_BIKE_TAXI_MAX_KM,
        cab_min_km: float = DEFAULT_CAB_MIN_KM,
    ) -> None:
        """
        Args:
            routing:          RoutingService (anything with an async calculate_route()).
            bike_taxi_max_km: Below this distance to the connection, recommend a bike taxi.
            cab_min_km:       Above this distance to the connection, recommend a cab.
        """
        self._routing = routing
        self._bike_taxi_max_km = bike_taxi_max_km
        self._cab_min_km = cab_min_km

    async def plan_rescue(
        self,
        user_lat: float,
        user_lng: float,
        leg: GuardedLeg,
        tick: Tick,
    ) -> RescuePlan:
        pickup = derive_pickup(user_lat, user_lng, leg.connection_lat, leg.connection_lng)

        route: Route | None
        try:
            route = await self._routing.calculate_route(
                user_lat, user_lng, pickup.lat, pickup.lng, WALK_PROFILE
            )
        except Exception:
            logger.warning("Rescue route to pickup failed; planning without a route", exc_info=True)
            route = None

        if route is not None:
            last_mile_km = distance_km(pickup.lat, pickup.lng, leg.connection_lat, leg.connection_lng)
            rescue_total_min = (
                route.duration_s / 60
                + PICKUP_WAIT_MIN
                + last_mile_km / LAST_MILE_SPEED_KMH * 60
            )
        else:
            rescue_total_min = tick.projected_arrival_min

        saving_min = max(0, round_half_up(tick.projected_arrival_min - rescue_total_min))
        mode = select_rescue_mode(
            tick.distance_remaining_km, self._bike_taxi_max_km, self._cab_min_km
        )

        logger.info(
            "Rescue plan for %s: mode=%s saving=%dmin route=%s",
            leg.connection_name,
            mode.value,
            saving_min,
            "none" if route is None else ("synthetic" if route.synthetic else "routed"),
        )
        return RescuePlan(
            pickup=pickup,
            route=route,
            saving_min=saving_min,
            mode=mode,
            rescue_total_min=rescue_total_min,
        )
