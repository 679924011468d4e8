from typing import List, Optional
from datetime import datetime, timedelta, timezone
from enum import Enum
from pydantic import BaseModel, Field


class RpcErrorCode(str, Enum):
    """Machine-readable failure codes of the member-task replication call"""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    UNKNOWN = "UNKNOWN"


class ProtoTimestamp(BaseModel):
    """Seconds + nanos since the Unix epoch"""

    seconds: int = Field(..., description="Whole seconds since epoch")
    nanos: int = Field(default=0, ge=0, lt=1_000_000_000, description="Nanoseconds")

    @classmethod
    def from_datetime(cls, dt: datetime) -> "ProtoTimestamp":
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - datetime(1970, 1, 1, tzinfo=timezone.utc)
        seconds = delta.days * 86400 + delta.seconds
        return cls(seconds=seconds, nanos=delta.microseconds * 1000)

    def to_datetime(self) -> datetime:
        """Naive UTC; sub-microsecond precision is dropped."""
        return datetime(1970, 1, 1) + timedelta(
            seconds=self.seconds, microseconds=self.nanos // 1000
        )


class AddCommunityTaskRequest(BaseModel):
    """Replicate one canonical community task to each listed member"""

    community_task_id: str = Field(
        ..., description="Canonical task ID, also the idempotency key"
    )
    community_id: str = Field(..., description="Community ID")
    member_ids: List[str] = Field(default_factory=list, description="Member account IDs")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Task description")
    deadline: Optional[ProtoTimestamp] = Field(default=None, description="Task deadline")
    subtasks: List[str] = Field(default_factory=list, description="Subtask titles")


class AddCommunityTaskResult(BaseModel):
    created: int = Field(..., description="Member tasks inserted by this call")
    duplicate: bool = Field(
        default=False, description="True when the request was already applied"
    )


class RemoveCommunityTaskResult(BaseModel):
    removed: int = Field(..., description="Member tasks deleted")
