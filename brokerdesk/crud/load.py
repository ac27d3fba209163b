# brokerdesk/crud/load.py
from typing import Iterable, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from uuid import UUID, uuid4
from datetime import datetime

from brokerdesk.models import Load
from brokerdesk.models.enums import LoadStatus


# --- Insert Load (load import) ---
async def create_load(db: AsyncSession, agency_id: UUID, load_number: str, **fields) -> Load:
    now = datetime.utcnow()
    load = Load(
        id=fields.pop("id", None) or uuid4(),
        agency_id=agency_id,
        load_number=load_number,
        status=LoadStatus.OPEN,
        created_at=fields.pop("created_at", None) or now,
        updated_at=now,
        **fields,
    )
    db.add(load)
    await db.flush()
    return load


# --- Fetch Load by ID (always re-read from the store) ---
async def get_load_by_id(db: AsyncSession, load_id: UUID) -> Load | None:
    result = await db.execute(
        select(Load).where(Load.id == load_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# --- Conditional status transition ---
async def transition_load(
    db: AsyncSession,
    load_id: UUID,
    from_statuses: Iterable[LoadStatus],
    values: dict,
    *criteria,
) -> bool:
    """Same contract as crud.lead.transition_lead: True only if one row changed."""
    stmt = (
        update(Load)
        .where(Load.id == load_id, Load.status.in_(list(from_statuses)), *criteria)
        .values(**values, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


def open_or_claimed_by(agent_id: UUID | None):
    """Open, or claimed by `agent_id` itself. Another agent's claim never matches."""
    return or_(Load.status == LoadStatus.OPEN, Load.claimed_by == agent_id)


async def clear_booked_lead(db: AsyncSession, load_id: UUID, lead_id: UUID) -> bool:
    """Detach `lead_id` from the load's attribution, if it is the attributed lead."""
    stmt = (
        update(Load)
        .where(Load.id == load_id, Load.booked_lead_id == lead_id)
        .values(booked_lead_id=None, attribution_match_type=None, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def get_loads_in_window(
    db: AsyncSession,
    agency_id: UUID,
    start: datetime,
    end: datetime,
    booked_source: str | None = None,
) -> Sequence[Load]:
    stmt = select(Load).where(
        Load.agency_id == agency_id,
        Load.created_at >= start,
        Load.created_at <= end,
    )
    if booked_source:
        stmt = stmt.where(Load.booked_source == booked_source)
    result = await db.execute(stmt.order_by(Load.created_at.asc()))
    return result.scalars().all()
