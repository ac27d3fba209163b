# brokerdesk/crud/calls.py
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from uuid import UUID, uuid4
from datetime import datetime

from brokerdesk.models import Call


# --- Insert Call (call ingestion) ---
async def create_call(db: AsyncSession, agency_id: UUID, **fields) -> Call:
    call = Call(id=fields.pop("id", None) or uuid4(), agency_id=agency_id, **fields)
    db.add(call)
    await db.flush()
    return call


async def get_call_by_id(db: AsyncSession, call_id: UUID) -> Call | None:
    result = await db.execute(select(Call).where(Call.id == call_id))
    return result.scalar_one_or_none()


# --- Most recent call that discussed a load number ---
async def get_latest_call_for_load_number(
    db: AsyncSession, agency_id: UUID, load_number: str, since: datetime
) -> Call | None:
    result = await db.execute(
        select(Call)
        .where(
            Call.agency_id == agency_id,
            Call.load_number == load_number,
            Call.started_at >= since,
        )
        .order_by(Call.started_at.desc())
        .limit(1)
    )
    return result.scalars().first()


async def get_calls_in_window(
    db: AsyncSession,
    agency_id: UUID,
    start: datetime,
    end: datetime,
    agent_id: UUID | None = None,
) -> Sequence[Call]:
    stmt = select(Call).where(
        Call.agency_id == agency_id,
        Call.started_at >= start,
        Call.started_at <= end,
    )
    if agent_id:
        stmt = stmt.where(Call.agent_id == agent_id)
    result = await db.execute(stmt.order_by(Call.started_at.asc()))
    return result.scalars().all()
