import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from app.utils.context import request_id_scope
from app.utils.datetime_utils import utc_now
from app.utils.logging import get_logger

logger = get_logger()

# A tick firing later than this is treated as missed
LATE_TOLERANCE_SECONDS = 0.05


@dataclass
class LoopState:
    """Scheduling state of one periodic loop, visible to its tick function."""

    name: str
    period: timedelta
    started_at: Optional[datetime] = None
    last_tick_at: Optional[datetime] = None
    previous_tick_at: Optional[datetime] = None
    run_id: Optional[str] = None
    ticks: int = 0
    missed_ticks: int = 0
    failed_ticks: int = 0
    stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


def next_tick_at(scheduled: float, fired: float, period: float) -> float:
    """
    Monotonic time of the tick after one that was due at `scheduled` and fired at `fired`.

    On time: keep the original cadence. Late: restart the cadence from the late tick,
    so ticks missed during an outage are dropped instead of fired back to back.
    """
    if fired - scheduled > LATE_TOLERANCE_SECONDS:
        return fired + period
    return scheduled + period


TickFunction = Callable[[LoopState], Awaitable[None]]


class PeriodicLoop:
    """
    Runs `tick(state)` every `period` until stopped.

    The first tick fires immediately. A tick that raises is logged and counted; the loop
    keeps going. `stop()` lets the running tick finish, then ends the loop.
    """

    def __init__(
        self,
        name: str,
        period: timedelta,
        tick: TickFunction,
        clock: Callable[[], float] = time.monotonic,
    ):
        if period.total_seconds() <= 0:
            raise ValueError(f"{name}: period must be positive")
        self.tick = tick
        self.clock = clock
        self.state = LoopState(name=name, period=period)
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.state.name

    async def _wait_until(self, deadline: float) -> None:
        delay = deadline - self.clock()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self.state.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        state = self.state
        period = state.period.total_seconds()
        state.started_at = utc_now()
        scheduled = self.clock()
        logger.info("Periodic loop started", loop=state.name, period_seconds=period)

        while not state.stopped:
            await self._wait_until(scheduled)
            if state.stopped:
                break

            fired = self.clock()
            if fired - scheduled > LATE_TOLERANCE_SECONDS:
                state.missed_ticks += 1
                logger.warning(
                    "Periodic loop tick delayed",
                    loop=state.name,
                    late_seconds=round(fired - scheduled, 3),
                )

            state.previous_tick_at = state.last_tick_at
            state.last_tick_at = utc_now()
            state.ticks += 1
            state.run_id = f"{state.name}-{uuid.uuid4()}"
            try:
                with request_id_scope(state.run_id):
                    await self.tick(state)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                state.failed_ticks += 1
                logger.exception(
                    "Periodic loop tick failed", loop=state.name, error=str(e)
                )

            scheduled = next_tick_at(scheduled, fired, period)

        logger.info("Periodic loop stopped", loop=state.name, ticks=state.ticks)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=self.state.name)
        return self._task

    def stop(self) -> None:
        self.state.stop_event.set()

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        """Signal stop and wait for the loop to finish; cancel it if it takes too long."""
        self.stop()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
