from typing import List, Optional, Literal, Any
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime

from brokerdesk.models.enums import LeadStatus, CloseReason, BookedSource

ResolveOutcome = Literal["booked", "covered", "closed", "callback_needed", "no_answer", "not_a_fit"]


# --- Priority ("why this lead") ---
class PriorityReason(BaseModel):
    code: str
    label: str
    icon: str
    priority: int


class PriorityResult(BaseModel):
    score: int = Field(ge=0, le=100)
    reasons: List[PriorityReason]
    time_in_queue_hours: int


# --- Lead snapshot ---
class LeadOut(BaseModel):
    id: UUID
    agency_id: UUID
    caller_phone: str
    caller_name: Optional[str] = None
    caller_company: Optional[str] = None
    carrier_mc: Optional[str] = None
    carrier_usdot: Optional[str] = None
    carrier_verified_at: Optional[datetime] = None
    status: LeadStatus
    intent_score: Optional[int] = None
    is_high_intent: bool
    intent_reason_breakdown: Optional[Any] = None
    claimed_by: Optional[UUID] = None
    claimed_at: Optional[datetime] = None
    booked_by: Optional[UUID] = None
    booked_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[CloseReason] = None
    resolved_at: Optional[datetime] = None
    callback_requested_at: Optional[datetime] = None
    last_contact_attempt_at: Optional[datetime] = None
    load_id: Optional[UUID] = None
    phone_call_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Requests ---
class AgentActionRequest(BaseModel):
    """Claim / release / reopen: the acting agent."""
    agent_id: Optional[UUID] = None


class LeadResolveRequest(BaseModel):
    agent_id: UUID
    outcome: ResolveOutcome
    load_id: Optional[UUID] = None          # required for booked
    close_reason: Optional[CloseReason] = None  # required for closed
    booked_source: BookedSource = BookedSource.MANUAL
    notes: Optional[str] = None


# --- Responses ---
class LeadResolveResponse(BaseModel):
    lead: LeadOut
    outcome: ResolveOutcome
    load_id: Optional[UUID] = None
    load_status: Optional[str] = None


class LeadPriorityResponse(BaseModel):
    lead_id: UUID
    priority: PriorityResult
    time_in_queue: str


class LeadQueueItem(BaseModel):
    lead: LeadOut
    priority: PriorityResult
    time_in_queue: str
