"""
Guardian endpoints — the presentation layer's view of the Connection Guardian.

GET  /guardian                 — current snapshot (status, tick, alert, legs)
POST /guardian/start           — start guarding explicit connections
POST /guardian/start/journey   — start from booked journey legs (geocoded)
POST /guardian/stop            — stop and reset to idle
POST /guardian/alert/dismiss   — hide the alert, keep monitoring
POST /guardian/pivot           — traveller accepted the rescue
POST /guardian/positions       — position fix ingress from the device

A refused start (no legs, location permission denied) is not an error:
the response is success=true with data.started=false.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from services.guardian.geo.kinematics import parse_hhmm
from services.guardian.guard.legs import build_guarded_legs
from services.guardian.guard.types import (
    Alert,
    ConnectionMode,
    GuardedLeg,
    GuardianSnapshot,
    JourneyLeg,
    PositionSample,
    Route,
    Tick,
)
from services.guardian.routing.service import format_distance, format_duration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guardian", tags=["guardian"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class GuardedLegIn(BaseModel):
    connectionName: str = Field(..., min_length=1, max_length=200)
    connectionLat: float = Field(..., ge=-90, le=90)
    connectionLng: float = Field(..., ge=-180, le=180)
    departureTime: str
    nextMode: ConnectionMode
    nextProvider: str = Field(..., min_length=1, max_length=200)

    @field_validator("departureTime")
    @classmethod
    def must_be_hhmm(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    def to_leg(self) -> GuardedLeg:
        return GuardedLeg(
            connection_name=self.connectionName,
            connection_lat=self.connectionLat,
            connection_lng=self.connectionLng,
            departure_time=self.departureTime,
            next_mode=self.nextMode,
            next_provider=self.nextProvider,
        )


class StartRequest(BaseModel):
    legs: list[GuardedLegIn] = Field(default_factory=list, max_length=20)


class JourneyLegIn(BaseModel):
    mode: ConnectionMode
    provider: str = Field(..., min_length=1, max_length=200)
    origin: str = Field(..., min_length=1, max_length=200)
    destination: str = Field(..., min_length=1, max_length=200)
    departureTime: str
    originTerminal: str | None = Field(default=None, max_length=200)
    destinationTerminal: str | None = Field(default=None, max_length=200)

    @field_validator("departureTime")
    @classmethod
    def must_be_hhmm(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    def to_leg(self) -> JourneyLeg:
        return JourneyLeg(
            mode=self.mode,
            provider=self.provider,
            origin=self.origin,
            destination=self.destination,
            departure_time=self.departureTime,
            origin_terminal=self.originTerminal,
            destination_terminal=self.destinationTerminal,
        )


class JourneyStartRequest(BaseModel):
    legs: list[JourneyLegIn] = Field(default_factory=list, max_length=21)


class PositionIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    speed: float | None = Field(default=None, description="Metres per second; negative = unknown.")
    timestamp: datetime | None = None

    def to_sample(self) -> PositionSample:
        ts = self.timestamp or datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return PositionSample(lat=self.lat, lng=self.lng, timestamp=ts, speed_mps=self.speed)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------


def _tick_dict(tick: Tick | None) -> dict[str, Any] | None:
    if tick is None:
        return None
    return {
        "missChancePct": tick.miss_chance_pct,
        "riskBand": tick.risk_band,
        "minutesRemaining": round(tick.minutes_remaining, 1),
        "distanceRemainingKm": round(tick.distance_remaining_km, 2),
        "projectedArrivalMin": round(tick.projected_arrival_min, 1),
        "speedKmh": round(tick.speed_kmh, 1),
    }


def _route_dict(route: Route | None) -> dict[str, Any] | None:
    if route is None:
        return None
    return {
        "coordinates": [{"lat": lat, "lng": lng} for lat, lng in route.coordinates],
        "distanceM": route.distance_m,
        "durationS": route.duration_s,
        "distanceText": format_distance(route.distance_m),
        "durationText": format_duration(route.duration_s),
        "synthetic": route.synthetic,
        "steps": [
            {
                "instruction": step.instruction,
                "distanceM": step.distance_m,
                "durationS": step.duration_s,
                "type": step.maneuver_type,
            }
            for step in route.steps
        ],
    }


def _alert_dict(alert: Alert | None) -> dict[str, Any] | None:
    if alert is None:
        return None
    plan = alert.plan
    return {
        "tick": _tick_dict(alert.tick),
        "message": alert.message,
        "messageSource": alert.message_source.value,
        "notificationTitle": alert.notification_title,
        "notificationBody": alert.notification_body,
        "rescueRoute": _route_dict(plan.route),
        "rescuePickup": {"lat": plan.pickup.lat, "lng": plan.pickup.lng, "name": plan.pickup.label},
        "rescueMode": plan.mode.value,
        "rescueSavingMin": plan.saving_min,
        "triggeredAt": alert.triggered_at.isoformat(),
    }


def snapshot_dict(snapshot: GuardianSnapshot) -> dict[str, Any]:
    return {
        "status": snapshot.status.value,
        "currentTick": _tick_dict(snapshot.current_tick),
        "activeAlert": _alert_dict(snapshot.active_alert),
        "guardedLegs": [
            {
                "connectionName": leg.connection_name,
                "connectionLat": leg.connection_lat,
                "connectionLng": leg.connection_lng,
                "departureTime": leg.departure_time,
                "nextMode": leg.next_mode.value,
                "nextProvider": leg.next_provider,
            }
            for leg in snapshot.guarded_legs
        ],
        "currentLegIndex": snapshot.current_leg_index,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _guardian(request: Request):
    guardian = getattr(request.app.state, "guardian", None)
    if guardian is None:
        raise HTTPException(status_code=503, detail="Guardian unavailable")
    return guardian


def _envelope(request: Request, data: dict[str, Any]) -> dict[str, Any]:
    return {"success": True, "data": data, "requestId": request.state.request_id}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("")
async def get_state(request: Request) -> dict:
    guardian = _guardian(request)
    return _envelope(request, snapshot_dict(guardian.snapshot()))


@router.post("/start")
async def start(body: StartRequest, request: Request) -> dict:
    guardian = _guardian(request)
    started = await guardian.start([leg.to_leg() for leg in body.legs])
    return _envelope(request, {"started": started, **snapshot_dict(guardian.snapshot())})


@router.post("/start/journey")
async def start_from_journey(body: JourneyStartRequest, request: Request) -> dict:
    """Convert booked legs into connections (geocoding each connection point), then start."""
    guardian = _guardian(request)
    geocoder = request.app.state.geocoder
    legs = await build_guarded_legs([leg.to_leg() for leg in body.legs], geocoder)
    logger.info("Journey start: %d booked leg(s) -> %d connection(s)", len(body.legs), len(legs))
    started = await guardian.start(legs)
    return _envelope(request, {"started": started, **snapshot_dict(guardian.snapshot())})


@router.post("/stop")
async def stop(request: Request) -> dict:
    guardian = _guardian(request)
    await guardian.stop()
    return _envelope(request, snapshot_dict(guardian.snapshot()))


@router.post("/alert/dismiss")
async def dismiss_alert(request: Request) -> dict:
    guardian = _guardian(request)
    guardian.dismiss_alert()
    return _envelope(request, snapshot_dict(guardian.snapshot()))


@router.post("/pivot")
async def activate_pivot(request: Request) -> dict:
    guardian = _guardian(request)
    guardian.activate_pivot()
    return _envelope(request, snapshot_dict(guardian.snapshot()))


@router.post("/positions")
async def ingest_position(body: PositionIn, request: Request) -> dict:
    source = request.app.state.position_source
    accepted = source.publish(body.to_sample())
    return _envelope(request, {"accepted": accepted})
