"""
Sentry error reporting for the guardian service.

Events can carry the traveller's whereabouts: /guardian/positions and
/guardian/start bodies hold raw coordinates. before_send masks location keys
in request bodies, breadcrumb data and extra context, along with auth
headers and the device token, before anything leaves the process.
"""

from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from services.guardian.config import settings

FILTERED = "[FILTERED]"

SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie", "x-device-token"}

# Keys whose values locate the traveller
LOCATION_KEYS = {"lat", "lng", "coordinates", "connectionLat", "connectionLng"}


def _mask_headers(headers: Any) -> None:
    if not isinstance(headers, dict):
        return
    for key in list(headers.keys()):
        if key.lower() in SENSITIVE_HEADERS:
            headers[key] = FILTERED


def _mask_location(data: Any) -> None:
    if isinstance(data, dict):
        for key, value in data.items():
            if key in LOCATION_KEYS:
                data[key] = FILTERED
            else:
                _mask_location(value)
    elif isinstance(data, list):
        for item in data:
            _mask_location(item)


def scrub_event(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """before_send hook."""
    for breadcrumb in event.get("breadcrumbs", {}).get("values", []):
        data = breadcrumb.get("data")
        if isinstance(data, dict):
            _mask_headers(data.get("headers"))
            _mask_location(data)

    request = event.get("request")
    if isinstance(request, dict):
        _mask_headers(request.get("headers"))
        _mask_location(request.get("data"))

    _mask_location(event.get("extra"))
    return event


def setup_sentry() -> bool:
    """Initialise Sentry when a DSN is configured. Returns whether it did."""
    if not settings.sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{settings.app_name}@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        before_send=scrub_event,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        send_default_pii=False,
    )
    sentry_sdk.set_tag("guardian.timezone", settings.guardian_timezone)
    return True
