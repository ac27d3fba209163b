import logging
from typing import List, Optional, Sequence
from uuid import UUID
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.crud import agent as crud_agent
from brokerdesk.crud import keyword as crud_keyword
from brokerdesk.crud import keyword_match_events as crud_match_events
from brokerdesk.crud import keyword_suggestions as crud_suggestions
from brokerdesk.crud import load as crud_load
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models import Agent, Keyword, KeywordSuggestion
from brokerdesk.models.enums import KeywordScope, KeywordType, LoadStatus, MatchType, SuggestionStatus
from brokerdesk.schemas.keyword import KeywordAnalyticsItem, KeywordQuotaStatus
from brokerdesk.services.date_windows import local_date, local_day_bounds, resolve_timezone
from brokerdesk.services.errors import (
    EntityNotFound,
    KeywordPermissionDenied,
    KeywordQuotaExceeded,
    TransitionConflict,
)

logger = logging.getLogger(__name__)

MAX_AGENT_KEYWORDS = 25
MAX_GLOBAL_KEYWORDS = 100
MAX_DAILY_ADDS = 10


class KeywordQuotaCounter:
    """
    Live counts behind the three keyword caps.

    Counts are always fresh queries, run in the same transaction as the insert
    they guard; nothing here is cached.
    """

    @staticmethod
    async def count_active(db: AsyncSession, scope: KeywordScope, owner_id: UUID, now: datetime) -> int:
        """Active keywords of `owner_id`: an agent for agent scope, an agency for global scope."""
        if scope == KeywordScope.GLOBAL:
            return await crud_keyword.count_active_global_keywords(db, owner_id, now)
        return await crud_keyword.count_active_agent_keywords(db, owner_id, now)

    @staticmethod
    async def adds_today(db: AsyncSession, agent: Agent, now: datetime) -> int:
        tz = resolve_timezone(agent.timezone)
        day_start, _ = local_day_bounds(local_date(now, tz), tz)
        return await crud_keyword.count_keywords_created_since(db, agent.id, day_start)

    @staticmethod
    async def check(db: AsyncSession, agent: Agent, scope: KeywordScope, now: datetime) -> None:
        """Raise KeywordQuotaExceeded if one more add would break a cap. Daily cap first."""
        adds = await KeywordQuotaCounter.adds_today(db, agent, now)
        if adds >= MAX_DAILY_ADDS:
            raise KeywordQuotaExceeded("daily", MAX_DAILY_ADDS, adds)

        if scope == KeywordScope.GLOBAL:
            active = await KeywordQuotaCounter.count_active(db, scope, agent.agency_id, now)
            if active >= MAX_GLOBAL_KEYWORDS:
                raise KeywordQuotaExceeded("global", MAX_GLOBAL_KEYWORDS, active)
        else:
            active = await KeywordQuotaCounter.count_active(db, scope, agent.id, now)
            if active >= MAX_AGENT_KEYWORDS:
                raise KeywordQuotaExceeded("agent", MAX_AGENT_KEYWORDS, active)


class KeywordServices:

    @staticmethod
    async def _get_agent(db: AsyncSession, agent_id: UUID) -> Agent:
        agent = await crud_agent.get_agent_by_id(db, agent_id)
        if not agent:
            raise EntityNotFound("agent", agent_id)
        return agent

    @staticmethod
    async def _insert_within_quota(
        uow: UnitOfWork,
        agent: Agent,
        keyword: str,
        scope: KeywordScope,
        now: datetime,
        **fields,
    ) -> Keyword:
        # Concurrent adds by the same agent (and, for global scope, the same
        # agency) wait here until the first transaction ends.
        await uow.lock(f"keywords:agent:{agent.id}")
        if scope == KeywordScope.GLOBAL:
            await uow.lock(f"keywords:agency:{agent.agency_id}")

        await KeywordQuotaCounter.check(uow.session, agent, scope, now)
        return await crud_keyword.create_keyword(
            uow.session,
            agency_id=agent.agency_id,
            keyword=keyword,
            scope=scope,
            created_by=agent.id,
            now=now,
            **fields,
        )

    # ---------------- KEYWORDS ----------------
    @staticmethod
    async def create_keyword(
        db: AsyncSession,
        agent_id: UUID,
        keyword: str,
        scope: KeywordScope = KeywordScope.AGENT,
        keyword_type: KeywordType = KeywordType.CUSTOM,
        match_type: MatchType = MatchType.CONTAINS,
        case_sensitive: bool = False,
        weight: float = 0.85,
        premium_response: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Keyword:
        now = now or datetime.utcnow()
        keyword = (keyword or "").strip()
        if not keyword:
            raise ValueError("Keyword text is required")

        agent = await KeywordServices._get_agent(db, agent_id)
        if scope == KeywordScope.GLOBAL and not agent.is_admin:
            raise KeywordPermissionDenied("Only admins can add global keywords")

        async with UnitOfWork(db) as uow:
            row = await KeywordServices._insert_within_quota(
                uow, agent, keyword, scope, now,
                keyword_type=keyword_type,
                match_type=match_type,
                case_sensitive=case_sensitive,
                weight=weight,
                premium_response=premium_response,
            )

        logger.info("Keyword '%s' added (%s) by agent %s", row.keyword, scope.value, agent.id)
        return row

    @staticmethod
    async def delete_keyword(db: AsyncSession, keyword_id: UUID, agent_id: UUID) -> None:
        keyword = await crud_keyword.get_keyword(db, keyword_id)
        if not keyword:
            raise EntityNotFound("keyword", keyword_id)
        agent = await KeywordServices._get_agent(db, agent_id)

        is_owner = keyword.scope == KeywordScope.AGENT and keyword.agent_id == agent.id
        is_agency_admin = agent.is_admin and agent.agency_id == keyword.agency_id
        if not (is_owner or is_agency_admin):
            raise KeywordPermissionDenied("Not allowed to delete this keyword")

        async with UnitOfWork(db) as uow:
            await crud_keyword.delete_keyword(uow.session, keyword_id)
        logger.info("Keyword %s deleted by agent %s", keyword_id, agent_id)

    @staticmethod
    async def list_active_keywords(
        db: AsyncSession,
        agency_id: UUID,
        agent_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Sequence[Keyword]:
        return await crud_keyword.get_active_keywords(db, agency_id, now or datetime.utcnow(), agent_id=agent_id)

    @staticmethod
    async def quota_status(db: AsyncSession, agent_id: UUID, now: Optional[datetime] = None) -> KeywordQuotaStatus:
        now = now or datetime.utcnow()
        agent = await KeywordServices._get_agent(db, agent_id)
        return KeywordQuotaStatus(
            personal_active=await KeywordQuotaCounter.count_active(db, KeywordScope.AGENT, agent.id, now),
            personal_limit=MAX_AGENT_KEYWORDS,
            global_active=await KeywordQuotaCounter.count_active(db, KeywordScope.GLOBAL, agent.agency_id, now),
            global_limit=MAX_GLOBAL_KEYWORDS,
            adds_today=await KeywordQuotaCounter.adds_today(db, agent, now),
            daily_limit=MAX_DAILY_ADDS,
        )

    # ---------------- SUGGESTIONS ----------------
    @staticmethod
    async def generate_suggestions(db: AsyncSession, load_id: UUID) -> List[KeywordSuggestion]:
        """
        Turn a booked load into keyword suggestions: its load number, pickup
        and destination ("City, ST"), the lane and the commodity. Keywords
        already pending for the agency are skipped.
        """
        load = await crud_load.get_load_by_id(db, load_id)
        if not load:
            raise EntityNotFound("load", load_id)
        if load.status != LoadStatus.BOOKED:
            raise TransitionConflict("load", load_id, "suggest keywords from", load.status.value)

        async with UnitOfWork(db) as uow:
            created = await KeywordServices.record_suggestions(uow.session, load)
        return created

    @staticmethod
    async def record_suggestions(db: AsyncSession, load) -> List[KeywordSuggestion]:
        """Insert the load's suggestions in the caller's transaction (booking units of work)."""
        seen = await crud_suggestions.get_pending_keyword_texts(db, load.agency_id)
        created: List[KeywordSuggestion] = []
        for text, keyword_type in suggestion_candidates(load):
            if text.lower() in seen:
                continue
            seen.add(text.lower())
            created.append(
                await crud_suggestions.create_suggestion(db, load.agency_id, text, keyword_type, load_id=load.id)
            )
        if created:
            logger.info("Created %d keyword suggestion(s) from load %s", len(created), load.load_number)
        return created

    @staticmethod
    async def list_suggestions(db: AsyncSession, agency_id: UUID, limit: int = 10) -> Sequence[KeywordSuggestion]:
        return await crud_suggestions.get_pending_suggestions(db, agency_id, limit)

    @staticmethod
    async def accept_suggestion(
        db: AsyncSession,
        suggestion_id: UUID,
        agent_id: UUID,
        now: Optional[datetime] = None,
    ) -> Keyword:
        """Create the suggested keyword (same quota path as a manual add) and mark it accepted."""
        now = now or datetime.utcnow()
        suggestion = await crud_suggestions.get_suggestion(db, suggestion_id)
        if not suggestion:
            raise EntityNotFound("keyword suggestion", suggestion_id)
        if suggestion.status != SuggestionStatus.PENDING:
            raise TransitionConflict("keyword suggestion", suggestion_id, "accept", suggestion.status.value)

        agent = await KeywordServices._get_agent(db, agent_id)
        scope = suggestion.suggested_scope
        if scope == KeywordScope.GLOBAL and not agent.is_admin:
            raise KeywordPermissionDenied("Only admins can add global keywords")

        async with UnitOfWork(db) as uow:
            row = await KeywordServices._insert_within_quota(
                uow, agent, suggestion.keyword, scope, now,
                keyword_type=suggestion.keyword_type,
                load_id=suggestion.load_id,
            )
            if not await crud_suggestions.set_status(uow.session, suggestion_id, SuggestionStatus.ACCEPTED, agent.id):
                raise TransitionConflict("keyword suggestion", suggestion_id, "accept",
                                         detail="Suggestion was already handled")

        logger.info("Suggestion '%s' accepted by agent %s", suggestion.keyword, agent.id)
        return row

    @staticmethod
    async def dismiss_suggestion(db: AsyncSession, suggestion_id: UUID) -> None:
        async with UnitOfWork(db) as uow:
            if await crud_suggestions.set_status(uow.session, suggestion_id, SuggestionStatus.DISMISSED):
                return
            suggestion = await crud_suggestions.get_suggestion(uow.session, suggestion_id)
            if not suggestion:
                raise EntityNotFound("keyword suggestion", suggestion_id)
            raise TransitionConflict("keyword suggestion", suggestion_id, "dismiss", suggestion.status.value)

    # ---------------- ANALYTICS ----------------
    @staticmethod
    async def keyword_analytics(
        db: AsyncSession,
        agency_id: UUID,
        days: int = 7,
        now: Optional[datetime] = None,
    ) -> List[KeywordAnalyticsItem]:
        now = now or datetime.utcnow()
        rows = await crud_match_events.get_keyword_match_counts(db, agency_id, since=now - timedelta(days=days))
        return [
            KeywordAnalyticsItem(
                keyword_id=row["keyword_id"],
                keyword=row["keyword"],
                scope=row["scope"],
                match_count=row["match_count"],
                booked_count=row["booked_count"],
                conversion_rate=round(row["booked_count"] / row["match_count"] * 100, 1) if row["match_count"] else 0.0,
            )
            for row in rows
        ]


def suggestion_candidates(load) -> List[tuple]:
    """(keyword, type) pairs a booked load can teach, in display order."""
    candidates = []
    if load.load_number:
        candidates.append((load.load_number, KeywordType.LOAD))

    pickup = _place(load.pickup_city, load.pickup_state)
    dest = _place(load.dest_city, load.dest_state)
    if pickup:
        candidates.append((pickup, KeywordType.CITY))
    if dest:
        candidates.append((dest, KeywordType.CITY))
    if load.pickup_city and load.dest_city:
        candidates.append((f"{load.pickup_city} → {load.dest_city}", KeywordType.LANE))

    if load.commodity:
        candidates.append((load.commodity, KeywordType.COMMODITY))
    return candidates


def _place(city: Optional[str], state: Optional[str]) -> Optional[str]:
    if not city:
        return None
    return f"{city}, {state}" if state else city
