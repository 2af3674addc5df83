"""
Routing package.

OpenRouteService directions (with a straight-line fallback) and Nominatim
geocoding. Both degrade to local approximations instead of raising.
"""

from services.guardian.routing.service import RoutingService, straight_line_route
from services.guardian.routing.geocode import GeocodingService, GeoResult

__all__ = ["RoutingService", "straight_line_route", "GeocodingService", "GeoResult"]
