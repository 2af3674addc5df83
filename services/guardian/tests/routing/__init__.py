"""OpenRouteService and Nominatim client tests (httpx mocked)."""
