from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import httpx

from app.schemas.notification_schemas import NotificationEvent
from app.services.notifications.deadline_utils import DeadlineCalculator
from app.utils.datetime_utils import format_duration, to_utc, utc_now
from app.utils.logging import get_logger

logger = get_logger()


def build_message(
    event: NotificationEvent, now: datetime, zone: ZoneInfo = ZoneInfo("UTC")
) -> str:
    """Human-readable notification text with the deadline and the time left"""
    local_deadline = to_utc(event.deadline).astimezone(zone)
    remaining = DeadlineCalculator.time_remaining(event.deadline, now)
    return (
        f"This is a notification for your task **{event.title}** ({event.task_id}). "
        f"Description: {event.description}. "
        f"Deadline: {local_deadline.strftime('%Y-%m-%d %H:%M:%S %z')} "
        f"(within {format_duration(remaining)})"
    )


def build_payload(
    event: NotificationEvent, now: datetime, zone: ZoneInfo = ZoneInfo("UTC")
) -> Dict[str, Any]:
    """Discord-compatible webhook body: markdown content plus one embed"""
    return {
        "content": build_message(event, now, zone),
        "embeds": [{"title": event.title, "description": event.description}],
    }


class WebhookDispatcher:
    """
    Best-effort delivery of one notification to one webhook URL.

    Never raises: a network error or a non-2xx answer is logged and reported as False.
    There is no retry.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        display_timezone: str = "UTC",
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.zone = ZoneInfo(display_timezone)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def dispatch(
        self, event: NotificationEvent, url: str, now: Optional[datetime] = None
    ) -> bool:
        payload = build_payload(event, now or utc_now(), self.zone)
        logger.info(
            "Sending notification",
            task_id=event.task_id,
            user_id=str(event.user_id),
            content=payload["content"],
        )

        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Webhook rejected notification",
                task_id=event.task_id,
                status_code=e.response.status_code,
            )
            return False
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(
                "Error while sending notification",
                task_id=event.task_id,
                url=url,
                error=str(e),
            )
            return False

        logger.info("Notification delivered", task_id=event.task_id)
        return True

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
