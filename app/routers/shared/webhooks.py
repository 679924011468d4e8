import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from app.schemas.webhook_schemas import SetWebhookRequest, WebhookResponse
from app.services.webhook_config_service import (
    WebhookConfigService,
    get_webhook_config_service,
)
from app.utils.errors import NotFoundError
from app.utils.responses import ResponseBuilder

webhooks_router = APIRouter()


@webhooks_router.get(
    "/{user_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Get a user's notification webhook",
)
async def get_webhook(
    request: Request,
    user_id: uuid.UUID = Path(..., description="User ID"),
    service: WebhookConfigService = Depends(get_webhook_config_service),
):
    webhook = await service.get_webhook(user_id)
    if webhook is None:
        raise NotFoundError("No webhook configured for this user", error_code="WEBHOOK_NOT_FOUND")

    return ResponseBuilder.success(
        request=request,
        data=WebhookResponse(user_id=webhook.user_id, url=webhook.url).model_dump(mode="json"),
        message="Webhook retrieved successfully",
    )


@webhooks_router.post(
    "/{user_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Set a user's notification webhook",
    description="Creates or replaces the webhook. Non-Discord hosts are accepted with a warning.",
)
async def set_webhook(
    request: Request,
    body: SetWebhookRequest,
    user_id: uuid.UUID = Path(..., description="User ID"),
    service: WebhookConfigService = Depends(get_webhook_config_service),
):
    webhook = await service.set_webhook(user_id, str(body.url))

    return ResponseBuilder.success(
        request=request,
        data=WebhookResponse(user_id=webhook.user_id, url=webhook.url).model_dump(mode="json"),
        message="Webhook set successfully",
    )


@webhooks_router.delete(
    "/{user_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Remove a user's notification webhook",
)
async def delete_webhook(
    request: Request,
    user_id: uuid.UUID = Path(..., description="User ID"),
    service: WebhookConfigService = Depends(get_webhook_config_service),
):
    if not await service.delete_webhook(user_id):
        raise NotFoundError("No webhook configured for this user", error_code="WEBHOOK_NOT_FOUND")

    return ResponseBuilder.success(
        request=request,
        data={"user_id": str(user_id)},
        message="Webhook deleted successfully",
    )
