from typing import Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis
from uuid import UUID
import logging
import traceback

from brokerdesk.schemas.metrics import DateRange, MetricsFilters, MetricsResult
from brokerdesk.db.session import get_db
from brokerdesk.db.redis_client import get_redis
from brokerdesk.services.date_windows import date_window
from brokerdesk.services.metrics_services import MetricsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/metrics", tags=["Metrics"])


@router.get(
    "",
    response_model=MetricsResult,
    summary="KPI rollup",
    description="Calls, leads and loads of an agency over a local-time window, with validation warnings. Cached for a short time.",
)
async def get_metrics(
    agency_id: UUID,
    date_range: DateRange = Query("today", alias="range", description="today | yesterday | 7d | 30d | all"),
    timezone: Optional[str] = Query(None, description="IANA timezone; defaults to DEFAULT_TIMEZONE"),
    agent_id: Optional[UUID] = None,
    booked_source: Optional[Literal["manual", "ai"]] = None,
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    try:
        window = date_window(date_range, timezone)
        filters = MetricsFilters(agent_id=agent_id, booked_source=booked_source)
        return await MetricsService.aggregate(db, redis, agency_id, window, filters)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error in get_metrics: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
