# crud/keyword.py
from typing import Sequence, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, or_, and_
from datetime import datetime, timedelta

from brokerdesk.models import Keyword
from brokerdesk.models.enums import KeywordScope, KeywordType, MatchType

KEYWORD_TTL = timedelta(hours=24)


# Create a new keyword; expiry is fixed at creation
async def create_keyword(
    db: AsyncSession,
    agency_id: UUID,
    keyword: str,
    scope: KeywordScope,
    created_by: UUID,
    keyword_type: KeywordType = KeywordType.CUSTOM,
    match_type: MatchType = MatchType.CONTAINS,
    weight: float = 0.85,
    case_sensitive: bool = False,
    load_id: Optional[UUID] = None,
    premium_response: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Keyword:
    now = now or datetime.utcnow()
    row = Keyword(
        id=uuid4(),
        agency_id=agency_id,
        keyword=keyword,
        keyword_type=keyword_type,
        scope=scope,
        agent_id=created_by if scope == KeywordScope.AGENT else None,
        created_by=created_by,
        load_id=load_id,
        match_type=match_type,
        case_sensitive=case_sensitive,
        weight=weight,
        premium_response=premium_response,
        active=True,
        expires_at=now + KEYWORD_TTL,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    await db.flush()
    return row


# Get a keyword by ID
async def get_keyword(db: AsyncSession, keyword_id: UUID) -> Optional[Keyword]:
    result = await db.execute(select(Keyword).where(Keyword.id == keyword_id))
    return result.scalar_one_or_none()


# Active, non-expired keywords visible to an agent (or the whole agency)
async def get_active_keywords(
    db: AsyncSession,
    agency_id: UUID,
    now: datetime,
    agent_id: Optional[UUID] = None,
) -> Sequence[Keyword]:
    stmt = select(Keyword).where(
        Keyword.agency_id == agency_id,
        Keyword.active.is_(True),
        Keyword.expires_at > now,
    )
    if agent_id:
        stmt = stmt.where(
            or_(
                Keyword.scope == KeywordScope.GLOBAL,
                and_(Keyword.scope == KeywordScope.AGENT, Keyword.agent_id == agent_id),
            )
        )
    result = await db.execute(stmt.order_by(Keyword.created_at.asc()))
    return result.scalars().all()


# --- Live quota counts ---
async def count_active_agent_keywords(db: AsyncSession, agent_id: UUID, now: datetime) -> int:
    result = await db.execute(
        select(func.count(Keyword.id)).where(
            Keyword.scope == KeywordScope.AGENT,
            Keyword.agent_id == agent_id,
            Keyword.active.is_(True),
            Keyword.expires_at > now,
        )
    )
    return result.scalar() or 0


async def count_active_global_keywords(db: AsyncSession, agency_id: UUID, now: datetime) -> int:
    result = await db.execute(
        select(func.count(Keyword.id)).where(
            Keyword.scope == KeywordScope.GLOBAL,
            Keyword.agency_id == agency_id,
            Keyword.active.is_(True),
            Keyword.expires_at > now,
        )
    )
    return result.scalar() or 0


async def count_keywords_created_since(db: AsyncSession, agent_id: UUID, since: datetime) -> int:
    """Adds by an agent since `since`, any scope, expired or deleted-by-expiry included."""
    result = await db.execute(
        select(func.count(Keyword.id)).where(
            Keyword.created_by == agent_id,
            Keyword.created_at >= since,
        )
    )
    return result.scalar() or 0


# Delete a keyword
async def delete_keyword(db: AsyncSession, keyword_id: UUID) -> bool:
    result = await db.execute(delete(Keyword).where(Keyword.id == keyword_id))
    return result.rowcount > 0
