from typing import List, Optional
from pydantic import BaseModel, Field, StringConstraints
from typing_extensions import Annotated
from uuid import UUID
from datetime import datetime

from brokerdesk.models.enums import KeywordScope, KeywordType, MatchType, SuggestionStatus


# --- Match result (scoring engine -> ranker / callers) ---
class KeywordMatch(BaseModel):
    keyword_id: UUID
    keyword: str
    scope: KeywordScope
    agent_id: Optional[UUID] = None  # owner of a personal keyword
    weight: float = 0.85
    match_type: MatchType = MatchType.CONTAINS

    model_config = {"from_attributes": True}


# --- Requests ---
class KeywordCreateRequest(BaseModel):
    agent_id: UUID  # acting agent
    keyword: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
    scope: KeywordScope = KeywordScope.AGENT
    keyword_type: KeywordType = KeywordType.CUSTOM
    match_type: MatchType = MatchType.CONTAINS
    case_sensitive: bool = False
    weight: float = Field(default=0.85, ge=0, le=1)
    premium_response: Optional[str] = None


class KeywordScoreRequest(BaseModel):
    agency_id: UUID
    text: str
    agent_id: Optional[UUID] = None


class TranscriptApplyRequest(BaseModel):
    text: str
    agent_id: Optional[UUID] = None
    call_id: Optional[UUID] = None
    source: str = "webhook_transcript"


class SuggestionActionRequest(BaseModel):
    agent_id: UUID


# --- Responses ---
class KeywordOut(BaseModel):
    id: UUID
    agency_id: UUID
    keyword: str
    keyword_type: KeywordType
    scope: KeywordScope
    agent_id: Optional[UUID] = None
    match_type: MatchType
    case_sensitive: bool
    weight: float
    active: bool
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class KeywordMatchEventOut(BaseModel):
    id: UUID
    keyword_id: UUID
    lead_id: Optional[UUID] = None
    call_id: Optional[UUID] = None
    source: str
    matched_text: Optional[str] = None
    booked: bool
    booked_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class KeywordScoreResponse(BaseModel):
    matches: List[KeywordMatch]
    intent_score_floor: Optional[int] = None  # score a matched lead is raised to


class TranscriptApplyResponse(BaseModel):
    lead_id: UUID
    matches: List[KeywordMatch]
    intent_score: Optional[int] = None
    is_high_intent: bool


class KeywordQuotaStatus(BaseModel):
    personal_active: int
    personal_limit: int
    global_active: int
    global_limit: int
    adds_today: int
    daily_limit: int


class KeywordSuggestionOut(BaseModel):
    id: UUID
    keyword: str
    keyword_type: KeywordType
    suggested_scope: KeywordScope
    load_id: Optional[UUID] = None
    status: SuggestionStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class KeywordAnalyticsItem(BaseModel):
    keyword_id: UUID
    keyword: str
    scope: KeywordScope
    match_count: int
    booked_count: int
    conversion_rate: float
