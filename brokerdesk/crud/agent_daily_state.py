# crud/agent_daily_state.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from typing import Optional
from uuid import UUID, uuid4
from datetime import date, datetime

from brokerdesk.models import AgentDailyState


# ---------------- CREATE ----------------
async def create_state(
    db: AsyncSession,
    agent_id: UUID,
    agency_id: UUID,
    local_date: date,
    timezone: str,
    reset_at: Optional[datetime] = None,
) -> AgentDailyState:
    state = AgentDailyState(
        id=uuid4(),
        agent_id=agent_id,
        agency_id=agency_id,
        local_date=local_date,
        timezone=timezone,
        reset_at=reset_at,
    )
    db.add(state)
    await db.flush()
    return state


# ---------------- READ ----------------
async def get_state(db: AsyncSession, agent_id: UUID, local_date: date) -> Optional[AgentDailyState]:
    result = await db.execute(
        select(AgentDailyState).where(
            AgentDailyState.agent_id == agent_id,
            AgentDailyState.local_date == local_date,
        )
    )
    return result.scalar_one_or_none()


async def get_latest_state(db: AsyncSession, agent_id: UUID) -> Optional[AgentDailyState]:
    result = await db.execute(
        select(AgentDailyState)
        .where(AgentDailyState.agent_id == agent_id)
        .order_by(desc(AgentDailyState.local_date))
        .limit(1)
    )
    return result.scalars().first()
