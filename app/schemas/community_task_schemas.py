from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field
import uuid


class CreateCommunityTaskRequest(BaseModel):
    """Request schema for creating a task in a community"""

    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: str = Field(default="", description="Task description")
    deadline: Optional[datetime] = Field(default=None, description="Task deadline")
    subtasks: List[str] = Field(
        default_factory=list, description="Subtask titles copied to every member"
    )


class CommunityTaskResponse(BaseModel):
    """Response schema for a canonical community task"""

    id: uuid.UUID = Field(..., description="Community task ID")
    community_id: uuid.UUID = Field(..., description="Community ID")
    title: str = Field(..., description="Task title")
    description: str = Field(..., description="Task description")
    deadline: Optional[datetime] = Field(None, description="Task deadline (UTC)")
    subtasks: List[str] = Field(..., description="Subtask titles")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
