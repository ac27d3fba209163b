from typing import Optional, Literal
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from brokerdesk.models.enums import LoadStatus, CloseReason, BookedSource

AttributionMatchType = Literal["explicit", "load_reference", "carrier_mc", "carrier_dot"]


class LoadOut(BaseModel):
    id: UUID
    agency_id: UUID
    load_number: str
    pickup_city: Optional[str] = None
    pickup_state: Optional[str] = None
    dest_city: Optional[str] = None
    dest_state: Optional[str] = None
    trailer_type: Optional[str] = None
    commodity: Optional[str] = None
    target_pay: Optional[Decimal] = None
    max_pay: Optional[Decimal] = None
    is_active: bool
    status: LoadStatus
    close_reason: Optional[CloseReason] = None
    claimed_by: Optional[UUID] = None
    claimed_at: Optional[datetime] = None
    booked_by: Optional[UUID] = None
    booked_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    booked_source: BookedSource
    booked_lead_id: Optional[UUID] = None
    booked_call_id: Optional[UUID] = None
    attribution_match_type: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Requests ---
class LoadBookRequest(BaseModel):
    agent_id: Optional[UUID] = None  # AI bookings: the agent of `call_id` acts
    booked_source: BookedSource = BookedSource.MANUAL
    call_id: Optional[UUID] = None
    lead_id: Optional[UUID] = None   # explicit attribution


class LoadCloseRequest(BaseModel):
    agent_id: Optional[UUID] = None
    close_reason: CloseReason


class AttributeRequest(BaseModel):
    lead_id: Optional[UUID] = None


# --- Responses ---
class AttributionResult(BaseModel):
    matched: bool
    match_type: Optional[AttributionMatchType] = None
    lead_id: Optional[UUID] = None


class LoadBookResponse(BaseModel):
    load: LoadOut
    attribution: AttributionResult


class LoadCloseCoveredResponse(BaseModel):
    load: LoadOut
    closed_lead_ids: list[UUID]
