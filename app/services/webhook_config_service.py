import uuid
from typing import Optional
from urllib.parse import urlparse

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Webhook
from app.db.session import get_async_session
from app.utils.logging import get_logger

logger = get_logger()

KNOWN_WEBHOOK_HOSTS = {"discord.com", "discordapp.com"}


class WebhookConfigService:
    """Per-user notification destinations"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_webhook(self, user_id: uuid.UUID) -> Optional[Webhook]:
        result = await self.db.execute(select(Webhook).where(Webhook.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_destination(self, user_id: uuid.UUID) -> Optional[str]:
        """URL to notify, or None when the user has no row or a NULL url"""
        result = await self.db.execute(
            select(Webhook.url).where(Webhook.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def set_webhook(self, user_id: uuid.UUID, url: str) -> Webhook:
        """Insert or replace the user's webhook URL"""
        host = urlparse(url).hostname
        if not host:
            logger.warning("Received webhook url without hostname", url=url)
        elif host not in KNOWN_WEBHOOK_HOSTS:
            logger.warning("Received webhook url with unknown domain", url=url, host=host)

        webhook = await self.get_webhook(user_id)
        if webhook is None:
            webhook = Webhook(user_id=user_id, url=url)
            self.db.add(webhook)
        else:
            webhook.url = url

        await self.db.commit()
        await self.db.refresh(webhook)
        logger.info("Webhook set", user_id=str(user_id))
        return webhook

    async def delete_webhook(self, user_id: uuid.UUID) -> bool:
        """Returns False when there was nothing to delete"""
        result = await self.db.execute(delete(Webhook).where(Webhook.user_id == user_id))
        await self.db.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info("Webhook deleted", user_id=str(user_id))
        return deleted


def get_webhook_config_service(
    db: AsyncSession = Depends(get_async_session),
) -> WebhookConfigService:
    """Dependency to provide WebhookConfigService instance"""
    return WebhookConfigService(db)
