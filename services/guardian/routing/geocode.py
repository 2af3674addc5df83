"""
GeocodingService — Nominatim place search.

Used when a journey is handed to the guardian as booked legs: the connection
point (bus stand, station, airport) is a name that has to become coordinates.

Nominatim usage policy requires an identifying User-Agent and at most one
request per second; journeys have a handful of legs so no throttling is done.

Errors are logged and return [] — callers pick their own default location.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_NOMINATIM_SEARCH = "https://nominatim.openstreetmap.org/search"

_CITY_TYPES = {"city", "town", "village", "state", "administrative"}


@dataclass(frozen=True)
class GeoResult:
    name: str
    display_name: str
    lat: float
    lng: float
    place_type: str
    is_city: bool


def _parse_result(item: dict[str, Any]) -> GeoResult:
    display_name = item.get("display_name", "")
    place_type = item.get("type") or item.get("class") or ""
    return GeoResult(
        name=item.get("name") or display_name.split(",")[0],
        display_name=display_name,
        lat=float(item["lat"]),
        lng=float(item["lon"]),
        place_type=place_type,
        is_city=place_type in _CITY_TYPES,
    )


class GeocodingService:
    def __init__(
        self,
        user_agent: str,
        timeout_s: float = 5.0,
        country_codes: str = "in",
        limit: int = 8,
    ) -> None:
        self._user_agent = user_agent
        self._timeout_s = timeout_s
        self._country_codes = country_codes
        self._limit = limit

    async def search(self, query: str) -> list[GeoResult]:
        """Return matches for a free-text place query, best first."""
        if not query.strip():
            return []

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.get(
                    _NOMINATIM_SEARCH,
                    params={
                        "q": query,
                        "format": "json",
                        "limit": self._limit,
                        "countrycodes": self._country_codes,
                        "addressdetails": 1,
                    },
                    headers={"Accept-Language": "en", "User-Agent": self._user_agent},
                )
                resp.raise_for_status()
                raw = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Nominatim returned %d for query=%r", exc.response.status_code, query
            )
            return []
        except Exception:
            logger.exception("Nominatim search failed for query=%r", query)
            return []

        results: list[GeoResult] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                results.append(_parse_result(item))
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed Nominatim result: %r", item)
        return results
