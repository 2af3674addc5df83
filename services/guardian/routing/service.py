"""
RoutingService — OpenRouteService directions client with a straight-line fallback.

Callers can always treat the result as non-null: a missing API key, an
unknown profile, a non-2xx response, a network error or an empty feature
collection all produce the synthetic straight-line approximation instead of
an exception.

ORS /v2/directions/{profile}/geojson returns:
  {
    "features": [{
      "geometry":   {"coordinates": [[lng, lat], ...]},
      "properties": {
        "summary":  {"distance": 1234.5, "duration": 890.1},
        "segments": [{"steps": [{"instruction": "...", "distance": 12.3,
                                 "duration": 4.5, "type": 11}, ...]}]
      }
    }]
  }

Note the [lng, lat] ordering on the wire; Route.coordinates is (lat, lng).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from services.guardian.geo.kinematics import distance_km
from services.guardian.guard.types import Route, RouteStep

logger = logging.getLogger(__name__)

_ORS_BASE = "https://api.openrouteservice.org/v2"

VALID_PROFILES = {"driving-car", "foot-walking", "cycling-regular"}

# Assumed speed for the synthetic straight-line route
_FALLBACK_SPEED_KMH = 60.0

# ORS maneuver types used by the synthetic route
_STEP_ARRIVE = 10
_STEP_DEPART = 11


def straight_line_route(
    from_lat: float, from_lng: float, to_lat: float, to_lng: float
) -> Route:
    """
    Synthetic route: great-circle distance at an assumed speed, drawn as a
    slightly curved three-point polyline so it does not look like a ruler line.
    """
    distance_m = distance_km(from_lat, from_lng, to_lat, to_lng) * 1000
    duration_s = distance_m / (_FALLBACK_SPEED_KMH / 3.6)
    heading = "north" if to_lat > from_lat else "south"

    return Route(
        coordinates=[
            (from_lat, from_lng),
            ((from_lat + to_lat) / 2 + (to_lng - from_lng) * 0.04, (from_lng + to_lng) / 2),
            (to_lat, to_lng),
        ],
        distance_m=distance_m,
        duration_s=duration_s,
        steps=[
            RouteStep(f"Head towards {heading}", distance_m, duration_s, _STEP_DEPART),
            RouteStep("Arrive at destination", 0.0, 0.0, _STEP_ARRIVE),
        ],
        synthetic=True,
    )


def _parse_ors_feature(payload: dict[str, Any]) -> Route | None:
    """Extract a Route from an ORS GeoJSON response. None if it has no usable feature."""
    features = payload.get("features") or []
    if not features:
        return None
    feature = features[0]

    try:
        coordinates = [(float(lat), float(lng)) for lng, lat, *_ in feature["geometry"]["coordinates"]]
        summary = feature["properties"]["summary"]
        distance_m = float(summary.get("distance", 0.0))
        duration_s = float(summary.get("duration", 0.0))
    except (KeyError, TypeError, ValueError):
        logger.warning("ORS feature missing geometry/summary")
        return None

    segments = feature["properties"].get("segments") or [{}]
    steps = [
        RouteStep(
            instruction=str(step.get("instruction", "")),
            distance_m=float(step.get("distance", 0.0)),
            duration_s=float(step.get("duration", 0.0)),
            maneuver_type=int(step.get("type", 0)),
        )
        for step in segments[0].get("steps") or []
    ]

    return Route(
        coordinates=coordinates,
        distance_m=distance_m,
        duration_s=duration_s,
        steps=steps,
    )


class RoutingService:
    """
    OpenRouteService client.

    Usage:
        routing = RoutingService(api_key=settings.ors_api_key)
        route = await routing.calculate_route(lat1, lng1, lat2, lng2, "foot-walking")
    """

    def __init__(self, api_key: str, timeout_s: float = 5.0) -> None:
        self._api_key = api_key
        self._timeout_s = timeout_s

    async def calculate_route(
        self,
        from_lat: float,
        from_lng: float,
        to_lat: float,
        to_lng: float,
        profile: str = "driving-car",
    ) -> Route:
        """Return a routed path, or the straight-line approximation on any failure."""
        if profile not in VALID_PROFILES:
            logger.error("Unknown routing profile %r; using straight-line route", profile)
            return straight_line_route(from_lat, from_lng, to_lat, to_lng)

        if not self._api_key:
            logger.debug("ORS_API_KEY not set; using straight-line route")
            return straight_line_route(from_lat, from_lng, to_lat, to_lng)

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.post(
                    f"{_ORS_BASE}/directions/{profile}/geojson",
                    json={
                        "coordinates": [[from_lng, from_lat], [to_lng, to_lat]],
                        "instructions": True,
                        "instructions_format": "text",
                        "language": "en",
                    },
                    headers={"Authorization": self._api_key},
                )
                resp.raise_for_status()
                payload = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "ORS returned %d for profile=%s: %s",
                exc.response.status_code,
                profile,
                exc.response.text[:200],
            )
            return straight_line_route(from_lat, from_lng, to_lat, to_lng)
        except Exception:
            logger.exception("ORS request failed for profile=%s", profile)
            return straight_line_route(from_lat, from_lng, to_lat, to_lng)

        route = _parse_ors_feature(payload)
        if route is None:
            return straight_line_route(from_lat, from_lng, to_lat, to_lng)
        return route


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

def format_distance(metres: float) -> str:
    """'850 m' below one kilometre, '1.2 km' above."""
    if metres < 1000:
        return f"{round(metres)} m"
    return f"{metres / 1000:.1f} km"


def format_duration(seconds: float) -> str:
    """'12 min', or '1h 5m' once it exceeds an hour."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes} min"
