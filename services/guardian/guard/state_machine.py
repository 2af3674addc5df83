"""
ConnectionGuardian — the state machine that watches one journey.

States:
  idle      no monitoring (construction, after stop())
  watching  position stream live, no alert
  safe      risk comfortably low (< safe threshold); UI de-emphasis only
  alert     an Alert is showing; ticks keep updating underneath it
  pivoting  the traveller accepted the rescue; monitoring continues

Per position sample:
  1. Build a Tick for the current leg.
  2. Deadline passed and another leg follows  -> advance leg, clear alert, watching.
  3. Risk < safe threshold                    -> alert -> watching, watching -> safe.
  4. Risk > alert threshold, nothing in flight, cooldown elapsed
                                              -> launch the alert pipeline.
  5. Otherwise only the tick changes.

Hysteresis: an alert is raised above 60 % but only cleared below 25 %.

Alert pipeline (background task, at most one at a time):
  RescuePlanner -> PhrasingService (message + title concurrently)
  -> Alert -> listeners -> PushNotifier.
  Phrasing failures fall back to the template composer, so once the pipeline
  starts the traveller always gets an alert. last_alert_at is stamped when the
  pipeline STARTS, so a slow phrasing call never delays the next cooldown.

Staleness:
  stop() and start() swap in a new GuardianSession object. A pipeline that
  finishes against a session that is no longer current, or whose leg index
  moved on, discards its result instead of committing it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.guardian.alerts.composer import (
    fallback_message,
    fallback_title,
    short_notification,
    truncate_body,
)
from services.guardian.alerts.phrasing import PhrasingContext
from services.guardian.geo.kinematics import build_tick, seconds_between
from services.guardian.guard.types import (
    Alert,
    GuardedLeg,
    GuardianSession,
    GuardianSnapshot,
    GuardianStatus,
    MessageSource,
    PositionSample,
    RescuePlan,
    Tick,
)
from services.guardian.rescue.planner import fallback_plan

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD_PCT = 60
DEFAULT_SAFE_THRESHOLD_PCT = 25
DEFAULT_ALERT_COOLDOWN_S = 180

Listener = Callable[[GuardianSnapshot], None]


def make_clock(tz_name: str) -> Callable[[], datetime]:
    """Wall clock in the journey's timezone; deadlines are local times."""
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid guardian timezone %r, defaulting to UTC", tz_name)
        tz = timezone.utc
    return lambda: datetime.now(tz)


class ConnectionGuardian:
    """
    Owns the single GuardianSession for this process.

    Usage:
        guardian = ConnectionGuardian(
            position_source=source, planner=planner,
            phrasing=phrasing, notifier=notifier,
        )
        await guardian.start(legs)
        ...
        await guardian.stop()

    The presentation layer reads status / current_tick / active_alert /
    guarded_legs / current_leg_index, or registers a listener with
    add_listener() to be told about every transition.
    """

    def __init__(
        self,
        *,
        position_source,
        planner,
        phrasing,
        notifier,
        alert_threshold_pct: int = DEFAULT_ALERT_THRESHOLD_PCT,
        safe_threshold_pct: int = DEFAULT_SAFE_THRESHOLD_PCT,
        alert_cooldown_s: float = DEFAULT_ALERT_COOLDOWN_S,
        position_interval_s: float = 15.0,
        position_distance_m: float = 50.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Args:
            position_source: PositionSource (request_permission / subscribe).
            planner:         RescuePlanner.
            phrasing:        PhrasingService (may raise PhrasingError).
            notifier:        PushNotifier.
            clock:           Returns "now" in the journey's timezone. Defaults to UTC.
        """
        if safe_threshold_pct >= alert_threshold_pct:
            raise ValueError("safe threshold must be below the alert threshold")

        self._positions = position_source
        self._planner = planner
        self._phrasing = phrasing
        self._notifier = notifier
        self._alert_threshold = alert_threshold_pct
        self._safe_threshold = safe_threshold_pct
        self._cooldown_s = alert_cooldown_s
        self._interval_s = position_interval_s
        self._distance_m = position_distance_m
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._session = GuardianSession()
        self._subscription = None
        self._alert_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def status(self) -> GuardianStatus:
        return self._session.status

    @property
    def current_tick(self) -> Tick | None:
        return self._session.last_tick

    @property
    def active_alert(self) -> Alert | None:
        return self._session.active_alert

    @property
    def guarded_legs(self) -> tuple[GuardedLeg, ...]:
        return tuple(self._session.legs)

    @property
    def current_leg_index(self) -> int:
        return self._session.current_leg_index

    @property
    def alert_in_flight(self) -> bool:
        return self._session.alert_in_flight

    def snapshot(self) -> GuardianSnapshot:
        return GuardianSnapshot(
            status=self._session.status,
            current_tick=self._session.last_tick,
            active_alert=self._session.active_alert,
            guarded_legs=tuple(self._session.legs),
            current_leg_index=self._session.current_leg_index,
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener. Returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, legs: list[GuardedLeg]) -> bool:
        """
        Begin monitoring a journey. Returns False (and changes nothing) when
        there are no legs or position access is denied.
        """
        if not legs:
            logger.warning("Guardian start ignored: no legs to guard")
            return False

        permitted, _ = await asyncio.gather(
            self._positions.request_permission(),
            self._notifier.request_permissions(),
        )
        if not permitted:
            logger.warning("Position permission denied; guardian disabled")
            return False

        self._cancel_subscription()
        self._session = GuardianSession(legs=list(legs), status=GuardianStatus.watching)
        self._publish()

        self._subscription = await self._positions.subscribe(
            self.handle_sample,
            interval_s=self._interval_s,
            distance_m=self._distance_m,
        )
        logger.info(
            "Guardian started: %d leg(s), first connection %s at %s",
            len(legs),
            legs[0].connection_name,
            legs[0].departure_time,
        )
        return True

    async def stop(self) -> None:
        """Stop monitoring and reset to idle. Safe at any point, including mid-alert."""
        self._cancel_subscription()
        self._session = GuardianSession()
        self._publish()
        try:
            await self._notifier.dismiss_all()
        except Exception:
            logger.exception("Failed to dismiss guardian notifications")
        logger.info("Guardian stopped")

    async def drain(self) -> None:
        """Wait for the outstanding alert pipeline, if any."""
        task = self._alert_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    # -------------------------------------------------------------------------
    # User actions
    # -------------------------------------------------------------------------

    def dismiss_alert(self) -> None:
        """Hide the alert; monitoring continues."""
        session = self._session
        if session.status == GuardianStatus.idle:
            return
        session.active_alert = None
        session.status = GuardianStatus.watching
        self._publish()

    def activate_pivot(self) -> None:
        """The traveller is acting on the rescue. The alert stays visible."""
        session = self._session
        if session.status == GuardianStatus.idle:
            return
        session.status = GuardianStatus.pivoting
        self._publish()

    # -------------------------------------------------------------------------
    # Sample handling
    # -------------------------------------------------------------------------

    async def handle_sample(self, sample: PositionSample) -> None:
        session = self._session
        leg_index = session.current_leg_index
        if not session.legs or leg_index >= len(session.legs):
            return

        leg = session.legs[leg_index]
        now = self._clock()
        tick = build_tick(sample.lat, sample.lng, sample.speed_kmh, leg, now)
        session.last_tick = tick

        if tick.minutes_remaining <= 0 and leg_index < len(session.legs) - 1:
            session.current_leg_index = leg_index + 1
            session.active_alert = None
            session.status = GuardianStatus.watching
            logger.info(
                "Connection %s departed; now guarding %s",
                leg.connection_name,
                session.legs[leg_index + 1].connection_name,
            )
            self._publish()
            return

        if tick.miss_chance_pct < self._safe_threshold:
            if session.status == GuardianStatus.alert:
                session.active_alert = None
                session.status = GuardianStatus.watching
                logger.info("Risk dropped to %d%%; alert cleared", tick.miss_chance_pct)
            elif session.status == GuardianStatus.watching:
                session.status = GuardianStatus.safe
            self._publish()
            return

        if session.status == GuardianStatus.safe:
            session.status = GuardianStatus.watching

        if (
            tick.miss_chance_pct > self._alert_threshold
            and not session.alert_in_flight
            and self._cooldown_elapsed(session, now)
        ):
            session.alert_in_flight = True
            session.last_alert_at = now
            logger.info(
                "Miss risk %d%% for %s (%.1f km, %.1f min left); computing rescue",
                tick.miss_chance_pct,
                leg.connection_name,
                tick.distance_remaining_km,
                tick.minutes_remaining,
            )
            self._alert_task = asyncio.create_task(
                self._run_alert_pipeline(session, leg_index, leg, sample, tick)
            )

        self._publish()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _cooldown_elapsed(self, session: GuardianSession, now: datetime) -> bool:
        if session.last_alert_at is None:
            return True
        return seconds_between(session.last_alert_at, now) >= self._cooldown_s

    def _is_stale(self, session: GuardianSession, leg_index: int) -> bool:
        return self._session is not session or session.current_leg_index != leg_index

    async def _run_alert_pipeline(
        self,
        session: GuardianSession,
        leg_index: int,
        leg: GuardedLeg,
        sample: PositionSample,
        tick: Tick,
    ) -> None:
        try:
            plan = await self._plan(sample, leg, tick)
            message, source, title, body = await self._phrase(tick, leg, plan)

            if self._is_stale(session, leg_index):
                logger.info("Discarding alert for leg %d: session stopped or advanced", leg_index)
                return

            session.active_alert = Alert(
                tick=tick,
                message=message,
                message_source=source,
                plan=plan,
                notification_title=title,
                notification_body=body,
                triggered_at=self._clock(),
            )
            session.status = GuardianStatus.alert
            self._publish()

            try:
                await self._notifier.send(
                    title,
                    body,
                    {"pivotAlert": True, "missChancePct": tick.miss_chance_pct},
                )
            except Exception:
                logger.exception("Guardian notification delivery failed")
        finally:
            session.alert_in_flight = False

    async def _plan(self, sample: PositionSample, leg: GuardedLeg, tick: Tick) -> RescuePlan:
        try:
            return await self._planner.plan_rescue(sample.lat, sample.lng, leg, tick)
        except Exception:
            logger.exception("Rescue planning failed; using stay-put plan")
            return fallback_plan(sample.lat, sample.lng)

    async def _phrase(
        self, tick: Tick, leg: GuardedLeg, plan: RescuePlan
    ) -> tuple[str, MessageSource, str, str]:
        """(message, source, notification title, notification body) — never raises."""
        ctx = PhrasingContext.build(tick, leg, plan)
        message, title = await asyncio.gather(
            self._phrasing.alert_message(ctx),
            self._phrasing.notification_title(ctx),
            return_exceptions=True,
        )

        if isinstance(message, BaseException) or isinstance(title, BaseException):
            error = message if isinstance(message, BaseException) else title
            logger.warning("Alert phrasing failed (%s); using template text", error)
            fallback = fallback_message(tick, leg, plan.pickup.label, plan.mode, plan.saving_min)
            return (
                fallback,
                MessageSource.template,
                fallback_title(tick, leg),
                truncate_body(fallback),
            )

        body = short_notification(tick, leg, plan.saving_min, plan.mode)
        return message, MessageSource.phrasing, title, body

    def _cancel_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _publish(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Guardian listener failed")
