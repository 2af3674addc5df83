"""
Connection Guardian FastAPI service — watches one journey's connections and
raises a rescue alert when the traveller is likely to miss one.

Entrypoint: uvicorn services.guardian.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import anthropic
import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response

from services.guardian.alerts.phrasing import PhrasingService
from services.guardian.config import settings
from services.guardian.guard.state_machine import ConnectionGuardian, make_clock
from services.guardian.middleware.sentry import setup_sentry
from services.guardian.notifications.push import PushNotifier, dedup_window_below_cooldown
from services.guardian.positions.source import QueuedPositionSource
from services.guardian.rescue.planner import RescuePlanner
from services.guardian.routers import guardian as guardian_router
from services.guardian.routers import health
from services.guardian.routing.geocode import GeocodingService
from services.guardian.routing.service import RoutingService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    # Redis for the notification dedup window
    redis_client = None
    if settings.redis_url:
        try:
            redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
            await redis_client.ping()
        except Exception as e:
            # Dedup degrades to an in-process window
            logger.warning("Redis unavailable, using in-process dedup: %s", e)
            redis_client = None

    app.state.redis = redis_client
    app.state.settings = settings

    # No key -> every alert uses the template text
    anthropic_client = None
    if settings.anthropic_api_key:
        anthropic_client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)

    routing = RoutingService(api_key=settings.ors_api_key, timeout_s=settings.routing_timeout_s)
    position_source = QueuedPositionSource()
    notifier = PushNotifier(
        redis_client,
        dedup_window_s=dedup_window_below_cooldown(
            settings.notification_dedup_window_s,
            settings.alert_cooldown_s,
            settings.routing_timeout_s + settings.phrasing_timeout_s,
        ),
        fcm_project_id=settings.fcm_project_id,
        fcm_service_account_key=settings.fcm_service_account_key,
        device_token=settings.push_device_token,
        platform=settings.push_platform,
    )

    guardian = ConnectionGuardian(
        position_source=position_source,
        planner=RescuePlanner(
            routing,
            bike_taxi_max_km=settings.bike_taxi_max_km,
            cab_min_km=settings.cab_min_km,
        ),
        phrasing=PhrasingService(
            anthropic_client,
            model=settings.phrasing_model,
            timeout_s=settings.phrasing_timeout_s,
        ),
        notifier=notifier,
        alert_threshold_pct=settings.alert_threshold_pct,
        safe_threshold_pct=settings.safe_threshold_pct,
        alert_cooldown_s=settings.alert_cooldown_s,
        position_interval_s=settings.position_interval_s,
        position_distance_m=settings.position_distance_m,
        clock=make_clock(settings.guardian_timezone),
    )

    app.state.position_source = position_source
    app.state.geocoder = GeocodingService(
        user_agent=settings.nominatim_user_agent,
        timeout_s=settings.geocode_timeout_s,
    )
    app.state.guardian = guardian

    yield

    await guardian.stop()
    if anthropic_client:
        await anthropic_client.close()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="Connection Guardian",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(guardian_router.router)


# Request ID injection
@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response
