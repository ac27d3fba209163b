# brokerdesk/crud/lead_events.py
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from uuid import UUID, uuid4

from brokerdesk.models import LeadEvent


def _status_value(status):
    return getattr(status, "value", status)


# --- Append audit event ---
async def create_event(
    db: AsyncSession,
    event_type: str,
    lead_id: UUID | None = None,
    load_id: UUID | None = None,
    agent_id: UUID | None = None,
    previous_status=None,
    new_status=None,
    meta: dict | None = None,
) -> LeadEvent:
    event = LeadEvent(
        id=uuid4(),
        lead_id=lead_id,
        load_id=load_id,
        agent_id=agent_id,
        event_type=event_type,
        previous_status=_status_value(previous_status),
        new_status=_status_value(new_status),
        meta=meta,
    )
    db.add(event)
    return event


async def get_events_for_lead(db: AsyncSession, lead_id: UUID) -> Sequence[LeadEvent]:
    result = await db.execute(
        select(LeadEvent)
        .where(LeadEvent.lead_id == lead_id)
        .order_by(LeadEvent.created_at.asc())
    )
    return result.scalars().all()


async def get_events_for_load(db: AsyncSession, load_id: UUID) -> Sequence[LeadEvent]:
    result = await db.execute(
        select(LeadEvent)
        .where(LeadEvent.load_id == load_id)
        .order_by(LeadEvent.created_at.asc())
    )
    return result.scalars().all()
