# brokerdesk/crud/agent.py
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from uuid import UUID, uuid4

from brokerdesk.models import Agent
from brokerdesk.models.enums import AgentRole


async def create_agent(
    db: AsyncSession,
    agency_id: UUID,
    full_name: str,
    email: str,
    role: AgentRole = AgentRole.AGENT,
    timezone: str | None = None,
    agent_id: UUID | None = None,
) -> Agent:
    agent = Agent(
        id=agent_id or uuid4(),
        agency_id=agency_id,
        full_name=full_name,
        email=email,
        role=role,
        timezone=timezone,
        is_active=True,
    )
    db.add(agent)
    await db.flush()
    return agent


async def get_agent_by_id(db: AsyncSession, agent_id: UUID) -> Agent | None:
    result = await db.execute(select(Agent).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


async def get_active_agents(db: AsyncSession) -> Sequence[Agent]:
    result = await db.execute(select(Agent).where(Agent.is_active.is_(True)))
    return result.scalars().all()
