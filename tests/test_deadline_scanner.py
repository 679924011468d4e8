import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from app.schemas.notification_schemas import NotificationEvent
from app.services.notifications.deadline_scanner import DeadlineScanner
from app.services.notifications.deadline_utils import DeadlineCalculator, DeadlineWindow
from app.utils.errors import BrokerError
from app.utils.periodic import PeriodicLoop

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
NAIVE_NOW = NOW.replace(tzinfo=None)
LEAD_TIME = timedelta(minutes=30)
CHECK_PERIOD = timedelta(seconds=30)


@pytest.fixture
def make_scanner(session_factory, queue_name):
    def build(broker):
        return DeadlineScanner(
            broker=broker,
            session_factory=session_factory,
            queue_name=queue_name,
            lead_time=LEAD_TIME,
            check_period=CHECK_PERIOD,
        )

    return build


async def drain(broker, queue_name):
    events = []
    while True:
        delivery = await broker.get(queue_name, timeout=0.05)
        if delivery is None:
            return events
        events.append(NotificationEvent.from_bytes(delivery.body))
        await broker.ack(delivery)


class TestDeadlineWindow:
    def test_window_bounds(self):
        window = DeadlineCalculator.scan_window(NOW, LEAD_TIME, CHECK_PERIOD)

        assert window.start == NAIVE_NOW + LEAD_TIME
        assert window.end == NAIVE_NOW + LEAD_TIME + CHECK_PERIOD

    def test_bounds_are_inclusive(self):
        window = DeadlineWindow(start=NAIVE_NOW, end=NAIVE_NOW + CHECK_PERIOD)

        assert window.contains(NAIVE_NOW)
        assert window.contains(NAIVE_NOW + CHECK_PERIOD)
        assert not window.contains(NAIVE_NOW - timedelta(microseconds=1))
        assert not window.contains(NAIVE_NOW + CHECK_PERIOD + timedelta(microseconds=1))
        assert not window.contains(None)

    def test_aware_deadlines_compare_in_utc(self):
        window = DeadlineWindow(start=NAIVE_NOW, end=NAIVE_NOW + CHECK_PERIOD)
        bangkok = timezone(timedelta(hours=7))

        assert window.contains(datetime(2024, 5, 1, 19, 0, 10, tzinfo=bangkok))


class TestDeadlineScanner:
    async def test_publishes_only_tasks_inside_the_window(
        self, make_scanner, broker, queue_name, task_factory
    ):
        inside = await task_factory(NAIVE_NOW + timedelta(minutes=30, seconds=10))
        await task_factory(NAIVE_NOW + timedelta(minutes=25))
        await task_factory(NAIVE_NOW + timedelta(minutes=31))
        await task_factory(None)

        result = await make_scanner(broker).scan(NOW)

        assert result.matched == 1
        assert result.published == 1
        events = await drain(broker, queue_name)
        assert [event.task_id for event in events] == [str(inside.id)]
        assert events[0].user_id == inside.user_id
        assert events[0].deadline == NOW + timedelta(minutes=30, seconds=10)

    async def test_task_due_in_25_minutes_is_notified_five_minutes_earlier(
        self, make_scanner, broker, queue_name, task_factory
    ):
        task = await task_factory(NAIVE_NOW + timedelta(minutes=25))
        scanner = make_scanner(broker)

        assert (await scanner.scan(NOW)).matched == 0
        result = await scanner.scan(NOW - timedelta(minutes=5))

        assert result.matched == 1
        assert [e.task_id for e in await drain(broker, queue_name)] == [str(task.id)]

    async def test_publishes_one_event_per_task(
        self, make_scanner, broker, queue_name, task_factory
    ):
        for seconds in (0, 15, 30):
            await task_factory(NAIVE_NOW + LEAD_TIME + timedelta(seconds=seconds))

        result = await make_scanner(broker).scan(NOW)

        assert result.published == 3
        assert len(await drain(broker, queue_name)) == 3

    async def test_publish_failure_does_not_stop_remaining_events(
        self, make_scanner, task_factory
    ):
        for seconds in (5, 10, 15):
            await task_factory(NAIVE_NOW + LEAD_TIME + timedelta(seconds=seconds))
        broker = AsyncMock()
        broker.publish.side_effect = [None, BrokerError("down"), None]

        result = await make_scanner(broker).scan(NOW)

        assert broker.publish.await_count == 3
        assert result.published == 2
        assert result.failed == 1

    async def test_query_failure_skips_the_tick_without_publishing(self, make_scanner):
        broker = AsyncMock()
        scanner = make_scanner(broker)

        with patch.object(
            scanner, "fetch_due_tasks", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            result = await scanner.scan(NOW)

        assert result.skipped is True
        broker.publish.assert_not_awaited()

    async def test_gap_between_windows_is_logged(self, make_scanner):
        scanner = make_scanner(AsyncMock())
        scanner.fetch_due_tasks = AsyncMock(return_value=[])

        with patch("app.services.notifications.deadline_scanner.logger") as logger:
            await scanner.scan(NOW)
            await scanner.scan(NOW + timedelta(minutes=2))

        messages = [call.args[0] for call in logger.warning.call_args_list]
        assert any("gap" in message.lower() for message in messages)

    async def test_overlapping_windows_are_logged(self, make_scanner):
        scanner = make_scanner(AsyncMock())
        scanner.fetch_due_tasks = AsyncMock(return_value=[])

        with patch("app.services.notifications.deadline_scanner.logger") as logger:
            await scanner.scan(NOW)
            await scanner.scan(NOW + timedelta(seconds=10))

        messages = [call.args[0] for call in logger.warning.call_args_list]
        assert any("overlap" in message.lower() for message in messages)

    async def test_user_id_round_trips_through_the_queue(
        self, make_scanner, broker, queue_name, task_factory
    ):
        user_id = uuid.uuid4()
        await task_factory(NAIVE_NOW + LEAD_TIME, user_id=user_id)

        await make_scanner(broker).scan(NOW)

        events = await drain(broker, queue_name)
        assert events[0].user_id == user_id

    async def test_windows_within_a_second_of_each_other_are_not_logged(self, make_scanner):
        scanner = make_scanner(AsyncMock())
        scanner.fetch_due_tasks = AsyncMock(return_value=[])

        with patch("app.services.notifications.deadline_scanner.logger") as logger:
            await scanner.scan(NOW)
            await scanner.scan(NOW + CHECK_PERIOD - timedelta(milliseconds=3))
            await scanner.scan(NOW + 2 * CHECK_PERIOD + timedelta(milliseconds=3))

        logger.warning.assert_not_called()

    async def test_on_time_loop_ticks_log_no_gap_or_overlap(self, session_factory, queue_name):
        period = timedelta(milliseconds=50)
        scanner = DeadlineScanner(
            broker=AsyncMock(),
            session_factory=session_factory,
            queue_name=queue_name,
            lead_time=LEAD_TIME,
            check_period=period,
        )
        scanner.fetch_due_tasks = AsyncMock(return_value=[])
        loop = PeriodicLoop("scan", period, scanner.tick)

        with patch("app.services.notifications.deadline_scanner.logger") as logger:
            loop.start()
            await asyncio.sleep(0.6)
            await loop.wait_stopped(timeout=1)

        assert loop.state.ticks >= 5
        logger.warning.assert_not_called()
