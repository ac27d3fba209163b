# crud/keyword_suggestions.py
from typing import Sequence, Optional
from uuid import UUID, uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from datetime import datetime

from brokerdesk.models import KeywordSuggestion
from brokerdesk.models.enums import KeywordScope, KeywordType, SuggestionStatus


async def create_suggestion(
    db: AsyncSession,
    agency_id: UUID,
    keyword: str,
    keyword_type: KeywordType,
    load_id: Optional[UUID] = None,
    suggested_scope: KeywordScope = KeywordScope.AGENT,
) -> KeywordSuggestion:
    suggestion = KeywordSuggestion(
        id=uuid4(),
        agency_id=agency_id,
        keyword=keyword,
        keyword_type=keyword_type,
        suggested_scope=suggested_scope,
        load_id=load_id,
        status=SuggestionStatus.PENDING,
    )
    db.add(suggestion)
    return suggestion


async def get_suggestion(db: AsyncSession, suggestion_id: UUID) -> Optional[KeywordSuggestion]:
    result = await db.execute(
        select(KeywordSuggestion)
        .where(KeywordSuggestion.id == suggestion_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_pending_suggestions(db: AsyncSession, agency_id: UUID, limit: int = 10) -> Sequence[KeywordSuggestion]:
    result = await db.execute(
        select(KeywordSuggestion)
        .where(
            KeywordSuggestion.agency_id == agency_id,
            KeywordSuggestion.status == SuggestionStatus.PENDING,
        )
        .order_by(KeywordSuggestion.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def get_pending_keyword_texts(db: AsyncSession, agency_id: UUID) -> set[str]:
    result = await db.execute(
        select(KeywordSuggestion.keyword).where(
            KeywordSuggestion.agency_id == agency_id,
            KeywordSuggestion.status == SuggestionStatus.PENDING,
        )
    )
    return {k.lower() for k in result.scalars().all()}


async def set_status(
    db: AsyncSession,
    suggestion_id: UUID,
    status: SuggestionStatus,
    accepted_by: Optional[UUID] = None,
) -> bool:
    """Move a pending suggestion to `status`. False if it was no longer pending."""
    values = {"status": status, "updated_at": datetime.utcnow()}
    if status == SuggestionStatus.ACCEPTED:
        values.update(accepted_by=accepted_by, accepted_at=datetime.utcnow())
    result = await db.execute(
        update(KeywordSuggestion)
        .where(
            KeywordSuggestion.id == suggestion_id,
            KeywordSuggestion.status == SuggestionStatus.PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
