from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from brokerdesk.schemas.agent import AgentDailyStateOut, DailyResetResponse
from brokerdesk.db.session import get_db
from brokerdesk.services.agent_services import AgentServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/agents", tags=["Agents"])


@router.get("/{agent_id}/daily-state", response_model=AgentDailyStateOut)
async def get_daily_state(agent_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await AgentServices.get_daily_state(db, agent_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_daily_state: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/daily-reset", response_model=DailyResetResponse)
async def daily_reset(db: AsyncSession = Depends(get_db)):
    try:
        reset_ids = await AgentServices.reset_due_agents(db)
        return DailyResetResponse(reset_agent_ids=reset_ids, count=len(reset_ids))
    except Exception as e:
        logger.error("Error in daily_reset: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
