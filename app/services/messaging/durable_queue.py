import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from kombu import Connection
from kombu.simple import SimpleQueue

from app.utils.errors import BrokerError
from app.utils.logging import get_logger

logger = get_logger()


@dataclass
class Delivery:
    """One dequeued message. It stays on the broker until acknowledged."""

    queue_name: str
    body: bytes
    delivery_tag: Any
    redelivered: bool = False
    _message: Any = field(default=None, repr=False)


class QueueBroker:
    """
    Named durable queues with explicit acknowledgement, on top of kombu.

    Works with any kombu transport URL (redis://, amqp://, memory:// in tests).
    kombu connections are blocking and not thread-safe, so every broker call runs on a
    single dedicated worker thread.
    """

    def __init__(self, broker_url: str, *, poll_timeout: float = 1.0):
        self.broker_url = broker_url
        self.poll_timeout = poll_timeout
        self._connection: Optional[Connection] = None
        self._queues: Dict[str, SimpleQueue] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="broker")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _queue(self, queue_name: str) -> SimpleQueue:
        if self._connection is None:
            self._connection = Connection(self.broker_url)
            self._connection.ensure_connection(max_retries=3)
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = self._connection.SimpleQueue(
                queue_name,
                no_ack=False,
                queue_opts={"durable": True},
                exchange_opts={"durable": True},
            )
            # Undecodable messages are still handed out so the caller can ack them
            queue.consumer.on_decode_error = (
                lambda message, exc, buffer=queue.buffer: buffer.append(message)
            )
            self._queues[queue_name] = queue
        return queue

    async def declare(self, queue_name: str) -> None:
        """Create the queue if it does not exist yet. Safe to call repeatedly."""
        try:
            await self._run(self._queue, queue_name)
        except Exception as e:
            raise BrokerError(f"Failed to declare queue {queue_name}: {e}") from e
        logger.info("Declared queue", queue=queue_name)

    def _publish(self, queue_name: str, payload: bytes) -> None:
        self._queue(queue_name).put(
            payload,
            content_type="application/octet-stream",
            content_encoding="binary",
            delivery_mode=2,
        )

    async def publish(self, queue_name: str, payload: bytes) -> None:
        """
        Publish raw bytes. Raises BrokerError when the broker does not take the message.

        The body is opaque to kombu; decoding is left to the consumer.
        """
        try:
            await self._run(self._publish, queue_name, payload)
        except Exception as e:
            raise BrokerError(f"Failed to publish to {queue_name}: {e}") from e

    def _get(self, queue_name: str, timeout: float) -> Optional[Delivery]:
        queue = self._queue(queue_name)
        try:
            message = queue.get(block=True, timeout=timeout)
        except SimpleQueue.Empty:
            return None
        body = message.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        return Delivery(
            queue_name=queue_name,
            body=body,
            delivery_tag=message.delivery_tag,
            redelivered=bool(message.delivery_info.get("redelivered", False)),
            _message=message,
        )

    async def get(
        self, queue_name: str, timeout: Optional[float] = None
    ) -> Optional[Delivery]:
        """Wait up to `timeout` seconds for one delivery; None when the queue stays empty."""
        try:
            return await self._run(
                self._get,
                queue_name,
                self.poll_timeout if timeout is None else timeout,
            )
        except Exception as e:
            raise BrokerError(f"Failed to consume from {queue_name}: {e}") from e

    async def consume(
        self, queue_name: str, stop_event: Optional[asyncio.Event] = None
    ) -> AsyncIterator[Delivery]:
        """Stream deliveries until `stop_event` is set."""
        while stop_event is None or not stop_event.is_set():
            delivery = await self.get(queue_name)
            if delivery is not None:
                yield delivery

    def _ack(self, delivery: Delivery) -> None:
        delivery._message.ack()

    async def ack(self, delivery: Delivery) -> None:
        """Remove the delivery from the queue for good."""
        try:
            await self._run(self._ack, delivery)
        except Exception as e:
            raise BrokerError(
                f"Failed to acknowledge delivery {delivery.delivery_tag}: {e}"
            ) from e

    def _close(self) -> None:
        for queue in self._queues.values():
            queue.close()
        self._queues.clear()
        if self._connection is not None:
            self._connection.release()
            self._connection = None

    async def close(self) -> None:
        """Release the connection. Unacknowledged deliveries go back to the queue."""
        try:
            await self._run(self._close)
        finally:
            self._executor.shutdown(wait=False)
