from typing import List, Optional
from pydantic import BaseModel
from uuid import UUID
from datetime import date, datetime


class AgentDailyStateOut(BaseModel):
    agent_id: UUID
    agency_id: UUID
    local_date: date
    timezone: str
    ai_calls: int
    ai_minutes: float
    engaged_calls: int
    quick_hangups: int
    leads: int
    high_intent: int
    booked: int
    callback_speed_seconds: int
    aei_score: int
    reset_at: Optional[datetime] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class DailyResetResponse(BaseModel):
    reset_agent_ids: List[UUID]
    count: int
