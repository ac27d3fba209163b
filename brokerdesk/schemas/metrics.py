from typing import Dict, List, Literal, Optional
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

DateRange = Literal["today", "yesterday", "7d", "30d", "all"]


class DateWindow(BaseModel):
    """UTC bounds (naive, inclusive) of a named local-time range."""
    range: DateRange
    label: str
    start: datetime
    end: datetime
    timezone: str
    bucket: Literal["hour", "day"]


class MetricsFilters(BaseModel):
    agent_id: Optional[UUID] = None
    booked_source: Optional[Literal["manual", "ai"]] = None


class AggregationWarning(BaseModel):
    code: str
    message: str


class MetricsKpis(BaseModel):
    # Calls
    total_calls: int = 0
    engaged_calls: int = 0
    engaged_count: int = 0  # engaged_calls floored at total_leads
    quick_hangups: int = 0
    unknown_duration_calls: int = 0
    total_duration_seconds: int = 0
    avg_duration_seconds: float = 0.0
    total_minutes: float = 0.0
    # Leads
    total_leads: int = 0
    leads_by_status: Dict[str, int] = {}
    high_intent_calls: int = 0
    high_intent_leads: int = 0
    high_intent_count: int = 0
    # Loads
    total_loads: int = 0
    loads_by_status: Dict[str, int] = {}
    open_loads: int = 0
    booked_loads: int = 0
    ai_booked_loads: int = 0
    # Rates (%)
    call_to_lead_rate: float = 0.0
    call_to_booking_rate: float = 0.0
    lead_to_booking_rate: float = 0.0
    engagement_rate: float = 0.0


class SeriesPoint(BaseModel):
    bucket: str  # local bucket start, ISO
    calls: int = 0
    engaged_calls: int = 0
    leads: int = 0
    booked_leads: int = 0


class MetricsResult(BaseModel):
    kpis: MetricsKpis
    series: List[SeriesPoint]
    warnings: List[AggregationWarning]
    window: Optional[DateWindow] = None
    cached: bool = False
