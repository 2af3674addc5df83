"""
Position source — a cancellable subscription over a stream of fixes.

subscribe(callback) -> PositionSubscription; subscription.cancel() stops it.

Samples are delivered one at a time: the callback for sample N is awaited
before sample N+1 is dispatched, so the guardian never handles two samples
for the same session concurrently even if fixes arrive in bursts.

Cadence mirrors a mobile location watch: a fix is dispatched when at least
`interval_s` has passed OR the traveller moved at least `distance_m` since the
last dispatched fix, whichever comes first. Everything else is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from services.guardian.geo.kinematics import distance_km, seconds_between
from services.guardian.guard.types import PositionSample

logger = logging.getLogger(__name__)

SampleCallback = Callable[[PositionSample], Awaitable[None]]

DEFAULT_INTERVAL_S = 15.0
DEFAULT_DISTANCE_M = 50.0
_QUEUE_MAXSIZE = 256


class PositionSubscription:
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()


class PositionSource(Protocol):
    async def request_permission(self) -> bool: ...

    async def subscribe(
        self,
        callback: SampleCallback,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        distance_m: float = DEFAULT_DISTANCE_M,
    ) -> PositionSubscription: ...


def should_dispatch(
    previous: PositionSample | None,
    sample: PositionSample,
    interval_s: float,
    distance_m: float,
) -> bool:
    if previous is None:
        return True
    elapsed_s = seconds_between(previous.timestamp, sample.timestamp)
    if elapsed_s >= interval_s:
        return True
    moved_m = distance_km(previous.lat, previous.lng, sample.lat, sample.lng) * 1000
    return moved_m >= distance_m


class QueuedPositionSource:
    """
    Position source fed by publish() — e.g. from the /guardian/positions route.

    Holds at most one subscription; subscribing again replaces the previous
    one and starts from an empty queue.
    """

    def __init__(self, permission_granted: bool = True) -> None:
        self._permission_granted = permission_granted
        self._queue: asyncio.Queue[PositionSample] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._subscription: PositionSubscription | None = None

    async def request_permission(self) -> bool:
        return self._permission_granted

    def set_permission(self, granted: bool) -> None:
        self._permission_granted = granted

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def subscribe(
        self,
        callback: SampleCallback,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
        distance_m: float = DEFAULT_DISTANCE_M,
    ) -> PositionSubscription:
        if self._subscription is not None:
            self._subscription.cancel()

        queue: asyncio.Queue[PositionSample] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._queue = queue
        task = asyncio.create_task(self._consume(queue, callback, interval_s, distance_m))
        self._subscription = PositionSubscription(task)
        return self._subscription

    def publish(self, sample: PositionSample) -> bool:
        """Enqueue a fix. False if nobody is subscribed or the queue is full."""
        if not self.subscribed:
            logger.debug("Position sample dropped: no active subscription")
            return False
        try:
            self._queue.put_nowait(sample)
        except asyncio.QueueFull:
            logger.warning("Position queue full; dropping sample at %s", sample.timestamp.isoformat())
            return False
        return True

    async def join(self) -> None:
        """Wait until every published sample has been handled (or dropped)."""
        await self._queue.join()

    async def _consume(
        self,
        queue: asyncio.Queue[PositionSample],
        callback: SampleCallback,
        interval_s: float,
        distance_m: float,
    ) -> None:
        last_dispatched: PositionSample | None = None
        while True:
            sample = await queue.get()
            try:
                if should_dispatch(last_dispatched, sample, interval_s, distance_m):
                    last_dispatched = sample
                    await callback(sample)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Position callback failed")
            finally:
                queue.task_done()
