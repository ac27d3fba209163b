from datetime import datetime

from brokerdesk.core.config import settings
from brokerdesk.schemas.metrics import MetricsFilters, MetricsKpis, MetricsResult
from brokerdesk.services.date_windows import date_window
from brokerdesk.services.metrics_services import MetricsService


async def test_cache_miss_aggregates_and_stores(db, agency_id, mock_redis, make_call, make_lead, make_load):
    await make_call(duration_seconds=40)
    await make_call(duration_seconds=3)
    await make_lead()
    await make_load()
    window = date_window("today")

    result = await MetricsService.aggregate(db, mock_redis, agency_id, window)

    assert result.cached is False
    assert result.kpis.total_calls == 2
    assert result.kpis.total_leads == 1
    assert result.kpis.total_loads == 1
    key = MetricsService.cache_key(agency_id, window, MetricsFilters())
    mock_redis.get.assert_awaited_once_with(key)
    mock_redis.set.assert_awaited_once()
    args, kwargs = mock_redis.set.call_args
    assert args[0] == key
    assert MetricsResult.model_validate_json(args[1]).kpis.total_calls == 2
    assert kwargs["ex"] == settings.METRICS_CACHE_SECONDS


async def test_cache_hit_skips_the_store(db, agency_id, mock_redis, make_call):
    await make_call(duration_seconds=40)
    cached = MetricsResult(kpis=MetricsKpis(total_calls=99), series=[], warnings=[])
    mock_redis.get.return_value = cached.model_dump_json()

    result = await MetricsService.aggregate(db, mock_redis, agency_id, date_window("today"))

    assert result.cached is True
    assert result.kpis.total_calls == 99
    mock_redis.set.assert_not_awaited()


async def test_filters_change_the_cache_key(agency_id, agent):
    window = date_window("7d", "UTC", datetime(2025, 6, 15))
    everyone = MetricsService.cache_key(agency_id, window, MetricsFilters())
    one_agent = MetricsService.cache_key(agency_id, window, MetricsFilters(agent_id=agent.id))
    ai_only = MetricsService.cache_key(agency_id, window, MetricsFilters(booked_source="ai"))

    assert len({everyone, one_agent, ai_only}) == 3
    assert everyone.endswith(":all:all")


async def test_agent_filter_narrows_calls(db, agency_id, agent, mock_redis, make_call):
    await make_call(agent_id=agent.id, duration_seconds=40)
    await make_call(duration_seconds=40)

    result = await MetricsService.aggregate(
        db, mock_redis, agency_id, date_window("today"), MetricsFilters(agent_id=agent.id)
    )
    assert result.kpis.total_calls == 1
