import logging
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis

from brokerdesk.core.config import settings
from brokerdesk.crud import calls as crud_calls
from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import load as crud_load
from brokerdesk.schemas.metrics import DateWindow, MetricsFilters, MetricsResult
from brokerdesk.services.metrics_aggregator import aggregate_metrics

logger = logging.getLogger(__name__)


class MetricsService:
    """
        Service class for the KPI dashboard.

        Fetches the calls, leads and loads of an agency inside a date window
        (optionally narrowed to one agent and/or one booked source), runs the
        pure aggregator over them and caches the result in Redis per
        (agency, window, filters) for METRICS_CACHE_SECONDS.

        Cached results come back with `cached=True`; nothing else differs.
    """

    @staticmethod
    def cache_key(agency_id: UUID, window: DateWindow, filters: MetricsFilters) -> str:
        return (
            f"metrics:{agency_id}:{window.range}:{window.start.isoformat()}:{window.end.isoformat()}"
            f":{filters.agent_id or 'all'}:{filters.booked_source or 'all'}"
        )

    @staticmethod
    async def aggregate(
        db: AsyncSession,
        redis: Redis,
        agency_id: UUID,
        window: DateWindow,
        filters: Optional[MetricsFilters] = None,
    ) -> MetricsResult:
        filters = filters or MetricsFilters()
        cache_key = MetricsService.cache_key(agency_id, window, filters)

        # 1. --- Checking Redis cache ---
        cached = await redis.get(cache_key)
        if cached:
            result = MetricsResult.model_validate_json(cached)
            result.cached = True
            return result

        # 2. --- Rows in window ---
        calls = await crud_calls.get_calls_in_window(db, agency_id, window.start, window.end, agent_id=filters.agent_id)
        leads = await crud_lead.get_leads_in_window(db, agency_id, window.start, window.end, agent_id=filters.agent_id)
        loads = await crud_load.get_loads_in_window(
            db, agency_id, window.start, window.end, booked_source=filters.booked_source
        )

        # 3. --- Aggregate ---
        result = aggregate_metrics(calls, leads, loads, window)
        if result.warnings:
            logger.info(
                "Metrics for agency %s (%s) returned warnings: %s",
                agency_id, window.range, [w.code for w in result.warnings],
            )

        # 4. --- Cache ---
        await redis.set(cache_key, result.model_dump_json(), ex=settings.METRICS_CACHE_SECONDS)
        return result
