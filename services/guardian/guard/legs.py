"""
Booked journey legs -> guarded connections.

A connection exists between every pair of consecutive legs: the traveller is
on leg i and must reach the point where leg i+1 departs before its departure
time. A single-leg journey has nothing to guard.
"""

from __future__ import annotations

import logging

from services.guardian.guard.types import GuardedLeg, JourneyLeg

logger = logging.getLogger(__name__)

# Chennai Central, used when a connection point cannot be geocoded
DEFAULT_CONNECTION_LAT = 13.0827
DEFAULT_CONNECTION_LNG = 80.2707


async def build_guarded_legs(journey_legs: list[JourneyLeg], geocoder) -> list[GuardedLeg]:
    """
    Args:
        journey_legs: Booked legs in travel order.
        geocoder:     GeocodingService (anything with an async search(query)).
    """
    guarded: list[GuardedLeg] = []

    for current_leg, next_leg in zip(journey_legs, journey_legs[1:]):
        connection_name = next_leg.origin_terminal or next_leg.origin
        lat, lng = DEFAULT_CONNECTION_LAT, DEFAULT_CONNECTION_LNG

        try:
            matches = await geocoder.search(connection_name)
        except Exception:
            logger.warning("Geocoding failed for %r", connection_name, exc_info=True)
            matches = []

        if matches:
            lat, lng = matches[0].lat, matches[0].lng
        else:
            logger.warning(
                "No coordinates for connection %r after %s leg; using default",
                connection_name,
                current_leg.mode.value,
            )

        guarded.append(
            GuardedLeg(
                connection_name=connection_name,
                connection_lat=lat,
                connection_lng=lng,
                departure_time=next_leg.departure_time,
                next_mode=next_leg.mode,
                next_provider=next_leg.provider,
            )
        )

    return guarded
