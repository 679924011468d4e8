from datetime import datetime
from pydantic import BaseModel, Field
import uuid


class RoutineResponse(BaseModel):
    id: uuid.UUID = Field(..., description="Routine ID")
    user_id: uuid.UUID = Field(..., description="Owner")
    title: str = Field(..., description="Routine title")
    description: str = Field(..., description="Routine description")
    period: str = Field(..., description="daily, weekly or monthly")
    completed: bool = Field(..., description="Completed in the current period")
    checktime: datetime = Field(..., description="Last completion state change (UTC)")
