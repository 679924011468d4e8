from typing import Optional
from pydantic import BaseModel, Field, HttpUrl
import uuid


class SetWebhookRequest(BaseModel):
    url: HttpUrl = Field(..., description="Destination for deadline notifications")


class WebhookResponse(BaseModel):
    user_id: uuid.UUID = Field(..., description="User ID")
    url: Optional[str] = Field(None, description="Configured webhook URL")
