# crud/keyword_match_events.py
from typing import Sequence, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from datetime import datetime

from brokerdesk.models import Keyword, KeywordMatchEvent


async def create_match_event(
    db: AsyncSession,
    agency_id: UUID,
    keyword_id: UUID,
    source: str,
    lead_id: Optional[UUID] = None,
    agent_id: Optional[UUID] = None,
    call_id: Optional[UUID] = None,
    matched_text: Optional[str] = None,
) -> KeywordMatchEvent:
    event = KeywordMatchEvent(
        id=uuid4(),
        agency_id=agency_id,
        keyword_id=keyword_id,
        lead_id=lead_id,
        agent_id=agent_id,
        call_id=call_id,
        source=source,
        matched_text=matched_text,
    )
    db.add(event)
    await db.flush()
    return event


async def get_events_for_lead(db: AsyncSession, lead_id: UUID) -> Sequence[KeywordMatchEvent]:
    result = await db.execute(
        select(KeywordMatchEvent)
        .where(KeywordMatchEvent.lead_id == lead_id)
        .order_by(KeywordMatchEvent.created_at.asc())
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def mark_events_booked(db: AsyncSession, lead_id: UUID, since: datetime, booked_at: datetime) -> int:
    """Stamp booked_at on the lead's not-yet-booked events created since `since`."""
    result = await db.execute(
        update(KeywordMatchEvent)
        .where(
            KeywordMatchEvent.lead_id == lead_id,
            KeywordMatchEvent.created_at >= since,
            KeywordMatchEvent.booked_at.is_(None),
        )
        .values(booked_at=booked_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def get_keyword_match_counts(db: AsyncSession, agency_id: UUID, since: datetime):
    """Per keyword: text, scope, match count and booked count since `since`."""
    booked_count = func.count(KeywordMatchEvent.booked_at)
    result = await db.execute(
        select(
            Keyword.id.label("keyword_id"),
            Keyword.keyword,
            Keyword.scope,
            func.count(KeywordMatchEvent.id).label("match_count"),
            booked_count.label("booked_count"),
        )
        .join(KeywordMatchEvent, KeywordMatchEvent.keyword_id == Keyword.id)
        .where(
            KeywordMatchEvent.agency_id == agency_id,
            KeywordMatchEvent.created_at >= since,
        )
        .group_by(Keyword.id, Keyword.keyword, Keyword.scope)
        .order_by(func.count(KeywordMatchEvent.id).desc())
    )
    return result.mappings().all()


async def get_events_with_keywords(db: AsyncSession, lead_id: UUID):
    """(keyword_id, keyword, scope) for each match event of the lead, oldest first."""
    result = await db.execute(
        select(Keyword.id, Keyword.keyword, Keyword.scope)
        .join(KeywordMatchEvent, KeywordMatchEvent.keyword_id == Keyword.id)
        .where(KeywordMatchEvent.lead_id == lead_id)
        .order_by(KeywordMatchEvent.created_at.asc())
    )
    return result.all()
