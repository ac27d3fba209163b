"""
KPI rollups over calls, leads and loads.

Pure functions: rows in, MetricsResult out. Inconsistent inputs never raise;
they are reported as AggregationWarning entries next to the numbers.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime, time, timedelta

from brokerdesk.schemas.metrics import AggregationWarning, DateWindow, MetricsKpis, MetricsResult, SeriesPoint
from brokerdesk.services.date_windows import resolve_timezone, to_local, to_utc_naive

logger = logging.getLogger(__name__)

ENGAGED_THRESHOLD_SECS = 20
QUICK_HANGUP_THRESHOLD_SECS = 10
HIGH_INTENT_DURATION_THRESHOLD_SECS = 45
INTENT_SCORE_THRESHOLD = 70


def _value(status: Any) -> Optional[str]:
    return getattr(status, "value", status)


def _rate(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 1)


def call_duration(call: Any) -> Optional[int]:
    """Known, non-negative duration in seconds; None means unknown (not zero)."""
    duration = getattr(call, "duration_seconds", None)
    if duration is None or duration < 0:
        return None
    return duration


def is_engaged_call(call: Any, lead: Any = None) -> bool:
    duration = call_duration(call)
    if duration is not None and duration >= ENGAGED_THRESHOLD_SECS:
        return True
    if getattr(call, "is_high_intent", False):
        return True
    return lead is not None


def is_quick_hangup(call: Any) -> bool:
    duration = call_duration(call)
    return duration is not None and duration < QUICK_HANGUP_THRESHOLD_SECS


def is_high_intent(call: Any = None, lead: Any = None) -> bool:
    if lead is not None:
        if getattr(lead, "is_high_intent", False):
            return True
        score = getattr(lead, "intent_score", None)
        if score is not None and score >= INTENT_SCORE_THRESHOLD:
            return True
    if call is not None:
        if getattr(call, "is_high_intent", False):
            return True
        duration = call_duration(call)
        if duration is not None and duration >= HIGH_INTENT_DURATION_THRESHOLD_SECS:
            return True
    return False


def _in_window(value: Optional[datetime], window: Optional[DateWindow]) -> bool:
    if window is None:
        return True
    if value is None:
        return False
    return window.start <= value <= window.end


def aggregate_metrics(
    calls: Sequence[Any],
    leads: Sequence[Any],
    loads: Sequence[Any],
    window: Optional[DateWindow] = None,
) -> MetricsResult:
    warnings: List[AggregationWarning] = []

    # --- Window filter ---
    kept_calls = [c for c in calls if _in_window(getattr(c, "started_at", None), window)]
    kept_leads = [l for l in leads if _in_window(getattr(l, "created_at", None), window)]
    kept_loads = [l for l in loads if _in_window(getattr(l, "created_at", None), window)]
    dropped = (len(calls) - len(kept_calls)) + (len(leads) - len(kept_leads)) + (len(loads) - len(kept_loads))
    if dropped:
        warnings.append(AggregationWarning(
            code="outside_window",
            message=f"Dropped {dropped} record(s) outside the {window.label} window.",
        ))
    calls, leads, loads = kept_calls, kept_leads, kept_loads

    lead_by_call: Dict[Any, Any] = {}
    for lead in leads:
        if getattr(lead, "phone_call_id", None):
            lead_by_call[lead.phone_call_id] = lead

    # --- Calls ---
    total_calls = len(calls)
    engaged_calls = quick_hangups = unknown_durations = negative_durations = 0
    high_intent_calls = 0
    total_seconds = known_durations = 0
    call_ids = set()

    for call in calls:
        call_ids.add(call.id)
        raw_duration = getattr(call, "duration_seconds", None)
        if raw_duration is not None and raw_duration < 0:
            negative_durations += 1
        duration = call_duration(call)
        if duration is None:
            unknown_durations += 1
        else:
            total_seconds += duration
            known_durations += 1

        lead = lead_by_call.get(call.id)
        if is_engaged_call(call, lead):
            engaged_calls += 1
        if is_quick_hangup(call):
            quick_hangups += 1
        if is_high_intent(call, lead):
            high_intent_calls += 1

    if negative_durations:
        warnings.append(AggregationWarning(
            code="negative_duration",
            message=f"{negative_durations} call(s) have a negative duration; treated as unknown.",
        ))

    # --- Leads ---
    total_leads = len(leads)
    leads_by_status = Counter(_value(l.status) for l in leads)
    high_intent_leads = sum(1 for l in leads if is_high_intent(None, l))

    missing_calls = sum(
        1 for l in leads if getattr(l, "phone_call_id", None) and l.phone_call_id not in call_ids
    )
    if missing_calls:
        warnings.append(AggregationWarning(
            code="lead_call_missing",
            message=f"{missing_calls} lead(s) reference a call that is not in the data set.",
        ))

    booked_without_load = sum(
        1 for l in leads if _value(l.status) == "booked" and not getattr(l, "load_id", None)
    )
    if booked_without_load:
        warnings.append(AggregationWarning(
            code="booked_lead_without_load",
            message=f"{booked_without_load} booked lead(s) have no load attached.",
        ))

    high_intent_count = max(high_intent_calls, high_intent_leads)
    if high_intent_count > 0 and total_calls == 0:
        warnings.append(AggregationWarning(
            code="high_intent_without_calls",
            message=f"High Intent ({high_intent_count}) > 0 but Total Calls = 0.",
        ))

    # Every lead implies an engaged call: the displayed count never drops below leads
    engaged_count = max(engaged_calls, total_leads)
    if engaged_count > engaged_calls:
        warnings.append(AggregationWarning(
            code="engaged_below_leads",
            message=f"Engaged calls ({engaged_calls}) below leads ({total_leads}); showing {engaged_count}.",
        ))
    elif engaged_calls > total_leads:
        warnings.append(AggregationWarning(
            code="engaged_above_leads",
            message=f"Engaged calls ({engaged_calls}) exceed leads ({total_leads}); lead capture may be lagging.",
        ))

    # --- Loads ---
    loads_by_status = Counter(_value(l.status) for l in loads)
    open_loads = sum(1 for l in loads if _value(l.status) == "open" and getattr(l, "is_active", True))
    booked_loads = loads_by_status.get("booked", 0)
    ai_booked_loads = sum(
        1 for l in loads if _value(l.status) == "booked" and _value(getattr(l, "booked_source", None)) == "ai"
    )
    booked_leads = leads_by_status.get("booked", 0)

    kpis = MetricsKpis(
        total_calls=total_calls,
        engaged_calls=engaged_calls,
        engaged_count=engaged_count,
        quick_hangups=quick_hangups,
        unknown_duration_calls=unknown_durations,
        total_duration_seconds=total_seconds,
        avg_duration_seconds=round(total_seconds / known_durations, 1) if known_durations else 0.0,
        total_minutes=round(total_seconds / 60, 1),
        total_leads=total_leads,
        leads_by_status=dict(leads_by_status),
        high_intent_calls=high_intent_calls,
        high_intent_leads=high_intent_leads,
        high_intent_count=high_intent_count,
        total_loads=len(loads),
        loads_by_status=dict(loads_by_status),
        open_loads=open_loads,
        booked_loads=booked_loads,
        ai_booked_loads=ai_booked_loads,
        call_to_lead_rate=_rate(total_leads, total_calls),
        call_to_booking_rate=_rate(booked_loads, total_calls),
        lead_to_booking_rate=_rate(booked_leads, total_leads),
        engagement_rate=_rate(engaged_calls, total_calls),
    )

    if warnings:
        logger.debug("Metrics warnings: %s", [w.code for w in warnings])

    return MetricsResult(
        kpis=kpis,
        series=build_series(calls, leads, lead_by_call, window),
        warnings=warnings,
        window=window,
    )


def build_series(
    calls: Sequence[Any],
    leads: Sequence[Any],
    lead_by_call: Dict[Any, Any],
    window: Optional[DateWindow],
) -> List[SeriesPoint]:
    """Per-bucket counts in the window's timezone; empty buckets are included for bounded windows."""
    tz = resolve_timezone(window.timezone if window else None)
    bucket = window.bucket if window else "day"

    def bucket_start(value: datetime) -> datetime:
        local = to_local(value, tz)
        if bucket == "hour":
            return local.replace(minute=0, second=0, microsecond=0)
        return local.replace(hour=0, minute=0, second=0, microsecond=0)

    points: Dict[datetime, SeriesPoint] = {}
    if window is not None and window.range != "all":
        cursor = bucket_start(window.start)
        last = bucket_start(window.end)
        while cursor <= last:
            points[cursor] = SeriesPoint(bucket=cursor.isoformat())
            if bucket == "hour":
                # step in UTC so DST days keep their real hour count
                cursor = bucket_start(to_utc_naive(cursor) + timedelta(hours=1))
            else:
                cursor = datetime.combine(cursor.date() + timedelta(days=1), time.min, tzinfo=tz)

    def point_for(value: datetime) -> SeriesPoint:
        key = bucket_start(value)
        if key not in points:
            points[key] = SeriesPoint(bucket=key.isoformat())
        return points[key]

    for call in calls:
        point = point_for(call.started_at)
        point.calls += 1
        if is_engaged_call(call, lead_by_call.get(call.id)):
            point.engaged_calls += 1

    for lead in leads:
        point = point_for(lead.created_at)
        point.leads += 1
        if _value(lead.status) == "booked":
            point.booked_leads += 1

    return [points[key] for key in sorted(points)]
