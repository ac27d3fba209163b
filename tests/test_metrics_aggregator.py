from datetime import datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from brokerdesk.services.date_windows import date_window
from brokerdesk.services.metrics_aggregator import (
    aggregate_metrics,
    is_engaged_call,
    is_high_intent,
    is_quick_hangup,
)

# 2025-03-12 18:00 UTC is 14:00 in New York (EDT)
NOW = datetime(2025, 3, 12, 18, 0, 0)
TODAY = date_window("today", "America/New_York", NOW)


def call(duration=None, started_at=None, high_intent=False):
    return SimpleNamespace(
        id=uuid4(),
        duration_seconds=duration,
        is_high_intent=high_intent,
        started_at=started_at or NOW - timedelta(hours=1),
    )


def lead(status="pending", phone_call_id=None, intent_score=None, high_intent=False, load_id=None, created_at=None):
    return SimpleNamespace(
        id=uuid4(),
        status=status,
        phone_call_id=phone_call_id,
        intent_score=intent_score,
        is_high_intent=high_intent,
        load_id=load_id,
        created_at=created_at or NOW - timedelta(hours=1),
    )


def load(status="open", booked_source="manual"):
    return SimpleNamespace(id=uuid4(), status=status, booked_source=booked_source, is_active=True,
                           created_at=NOW - timedelta(hours=2))


def codes(result):
    return [w.code for w in result.warnings]


def test_engaged_count_is_floored_at_leads():
    calls = [call(30), call(25), call(60)] + [call(5) for _ in range(7)]
    leads = [lead() for _ in range(7)]

    result = aggregate_metrics(calls, leads, [], TODAY)

    assert result.kpis.engaged_calls == 3
    assert result.kpis.engaged_count == 7
    assert "engaged_below_leads" in codes(result)


def test_more_engaged_calls_than_leads_warns():
    calls = [call(30) for _ in range(5)]
    leads = [lead(), lead()]

    result = aggregate_metrics(calls, leads, [], TODAY)

    assert result.kpis.engaged_calls == 5
    assert result.kpis.engaged_count == 5
    assert "engaged_above_leads" in codes(result)
    assert "engaged_below_leads" not in codes(result)


def test_engaged_equal_to_leads_is_quiet():
    result = aggregate_metrics([call(30), call(30)], [lead(), lead()], [], TODAY)
    assert result.warnings == []


def test_unknown_duration_is_not_a_quick_hangup():
    unknown = call(None)
    assert is_quick_hangup(unknown) is False
    assert is_quick_hangup(call(0)) is True
    assert is_quick_hangup(call(9)) is True
    assert is_quick_hangup(call(10)) is False

    result = aggregate_metrics([unknown, call(4)], [], [], TODAY)
    assert result.kpis.quick_hangups == 1
    assert result.kpis.unknown_duration_calls == 1


def test_negative_duration_is_treated_as_unknown():
    result = aggregate_metrics([call(-30), call(40)], [], [], TODAY)

    assert result.kpis.unknown_duration_calls == 1
    assert result.kpis.total_duration_seconds == 40
    assert result.kpis.avg_duration_seconds == 40.0
    assert "negative_duration" in codes(result)


def test_engagement_rules():
    assert is_engaged_call(call(20)) is True
    assert is_engaged_call(call(19)) is False
    assert is_engaged_call(call(None, high_intent=True)) is True
    assert is_engaged_call(call(3), lead()) is True


def test_high_intent_rules():
    assert is_high_intent(call(45)) is True
    assert is_high_intent(call(44)) is False
    assert is_high_intent(None, lead(intent_score=70)) is True
    assert is_high_intent(None, lead(intent_score=69)) is False
    assert is_high_intent(None, lead(high_intent=True)) is True


def test_high_intent_without_calls_warns():
    result = aggregate_metrics([], [lead(intent_score=85)], [], TODAY)

    assert result.kpis.high_intent_count == 1
    assert result.kpis.total_calls == 0
    assert "high_intent_without_calls" in codes(result)


def test_structural_warnings():
    leads = [lead(phone_call_id=uuid4()), lead(status="booked", load_id=None)]
    result = aggregate_metrics([], leads, [], TODAY)

    assert "lead_call_missing" in codes(result)
    assert "booked_lead_without_load" in codes(result)


def test_records_outside_window_are_dropped():
    stale = call(30, started_at=NOW - timedelta(days=3))
    result = aggregate_metrics([stale, call(30)], [], [], TODAY)

    assert result.kpis.total_calls == 1
    assert "outside_window" in codes(result)


def test_rates_and_load_counts():
    calls = [call(30) for _ in range(8)]
    leads = [lead(status="booked", load_id=uuid4()), lead(), lead(), lead()]
    loads = [load("booked", "ai"), load("booked"), load("open"), load("closed")]

    kpis = aggregate_metrics(calls, leads, loads, TODAY).kpis

    assert kpis.call_to_lead_rate == 50.0
    assert kpis.call_to_booking_rate == 25.0
    assert kpis.lead_to_booking_rate == 25.0
    assert kpis.engagement_rate == 100.0
    assert kpis.booked_loads == 2
    assert kpis.ai_booked_loads == 1
    assert kpis.open_loads == 1
    assert kpis.loads_by_status == {"booked": 2, "open": 1, "closed": 1}


def test_empty_input_has_zero_rates_and_no_warnings():
    result = aggregate_metrics([], [], [], TODAY)
    assert result.kpis.call_to_lead_rate == 0.0
    assert result.warnings == []


def test_today_series_has_one_bucket_per_local_hour():
    result = aggregate_metrics([call(30, started_at=NOW)], [lead(created_at=NOW)], [], TODAY)

    assert len(result.series) == 24
    busy = [p for p in result.series if p.calls]
    assert len(busy) == 1
    assert busy[0].bucket == "2025-03-12T14:00:00-04:00"
    assert busy[0].leads == 1


def test_daily_series_survives_dst_change():
    # 2025-03-09 is the spring-forward day in New York
    window = date_window("7d", "America/New_York", NOW)
    result = aggregate_metrics([], [], [], window)

    assert [p.bucket[:10] for p in result.series] == [
        "2025-03-05", "2025-03-06", "2025-03-07", "2025-03-08",
        "2025-03-09", "2025-03-10", "2025-03-11", "2025-03-12",
    ]


@pytest.mark.parametrize("range_name", ["yesterday", "30d", "all"])
def test_other_windows_aggregate_without_error(range_name):
    window = date_window(range_name, "America/New_York", NOW)
    result = aggregate_metrics([call(30, started_at=NOW - timedelta(days=1))], [], [], window)
    assert result.window.range == range_name
