from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from app.utils.datetime_utils import to_rfc3339, to_utc


class NotificationEvent(BaseModel):
    """
    The only payload carried by the notification queue.

    Wire format is a JSON object with exactly these fields; `deadline` is RFC3339 in UTC.
    Anything that fails validation is a poison message and gets dropped by the consumer.
    """

    model_config = ConfigDict(frozen=True)

    user_id: UUID = Field(..., description="Owner of the task")
    task_id: str = Field(..., min_length=1, description="Task identifier")
    title: str = Field(..., description="Task title")
    description: str = Field(..., description="Task description")
    deadline: datetime = Field(..., description="Task deadline")

    @field_validator("deadline")
    @classmethod
    def normalize_deadline(cls, v: datetime) -> datetime:
        return to_utc(v)

    @field_serializer("deadline")
    def serialize_deadline(self, v: datetime) -> str:
        return to_rfc3339(v)

    @field_serializer("user_id")
    def serialize_user_id(self, v: UUID) -> str:
        return str(v)

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, payload: bytes) -> "NotificationEvent":
        return cls.model_validate_json(payload)
