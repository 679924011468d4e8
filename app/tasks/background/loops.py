from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import Settings
from app.services.messaging import QueueBroker
from app.services.notifications.deadline_scanner import DeadlineScanner
from app.services.routine_service import RoutineResetScheduler
from app.utils.errors import BrokerError
from app.utils.logging import get_logger
from app.utils.periodic import PeriodicLoop

logger = get_logger()


class BackgroundLoops:
    """
    The deadline scan and routine reset loops of one process.

    Each loop has its own state and stop signal. The queue broker is shared by the scan
    loop and closed on stop.
    """

    def __init__(
        self,
        config: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        broker: Optional[QueueBroker] = None,
    ):
        self.broker = broker or QueueBroker(
            config.broker_url, poll_timeout=config.CONSUMER_POLL_TIMEOUT_SECONDS
        )
        self.queue_name = config.NOTIFICATION_QUEUE_NAME
        self.scanner = DeadlineScanner(
            broker=self.broker,
            session_factory=session_factory,
            queue_name=config.NOTIFICATION_QUEUE_NAME,
            lead_time=config.lead_time,
            check_period=config.check_period,
        )
        self.routine_reset = RoutineResetScheduler(
            session_factory, timezone=config.ROUTINE_RESET_TIMEZONE
        )
        self.loops: List[PeriodicLoop] = [
            PeriodicLoop("scan", config.check_period, self.scanner.tick),
            PeriodicLoop(
                "routine-reset", config.routine_reset_interval, self.routine_reset.tick
            ),
        ]

    async def start(self) -> None:
        try:
            await self.broker.declare(self.queue_name)
        except BrokerError as e:
            # Not fatal; each scan reports its own publish failures
            logger.error("Queue not reachable at startup", queue=self.queue_name, error=e.message)

        for loop in self.loops:
            loop.start()
        logger.info("Background loops started", loops=[loop.name for loop in self.loops])

    async def stop(self, timeout: float = 10.0) -> None:
        for loop in self.loops:
            loop.stop()
        for loop in self.loops:
            await loop.wait_stopped(timeout)
        await self.broker.close()
        logger.info("Background loops stopped")

    def describe(self) -> List[dict]:
        return [
            {
                "name": loop.name,
                "period_seconds": loop.state.period.total_seconds(),
                "last_tick_at": (
                    loop.state.last_tick_at.isoformat() if loop.state.last_tick_at else None
                ),
                "ticks": loop.state.ticks,
                "missed_ticks": loop.state.missed_ticks,
                "failed_ticks": loop.state.failed_ticks,
                "running": not loop.state.stopped,
            }
            for loop in self.loops
        ]
