import logging
import re
from typing import Any, Iterable, List, Optional
from uuid import UUID
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.crud import keyword as crud_keyword
from brokerdesk.crud import keyword_match_events as crud_match_events
from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import lead_events as crud_events
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models.enums import KeywordScope, MatchType
from brokerdesk.schemas.keyword import KeywordMatch, TranscriptApplyResponse
from brokerdesk.services.errors import EntityNotFound

logger = logging.getLogger(__name__)

KEYWORD_INTENT_SCORE = 85
BOOKED_LOOKBACK = timedelta(days=7)
DEFAULT_SOURCE = "webhook_transcript"


class KeywordScoringEngine:
    """
        Engine for matching call text against the agency's high-intent
        keywords and feeding the result into the lead's intent fields.

        Responsibilities:
        1. Matching (`match_keywords`):
        - Pure: keyword rows + text in, KeywordMatch list out.
        - contains: substring, case-insensitive unless `case_sensitive`.
        - exact: whole-word match.
        - regex: pattern search; a broken pattern never matches.
        - Personal (agent-scoped) matches are listed before global ones.

        2. Scoring (`score_keywords`):
        - Loads the active, non-expired keywords visible to the agent
          (its own plus the agency's global ones) and matches them.

        3. Applying (`apply_transcript`):
        - Raises the lead's intent_score to at least 85 (never lowers it),
          flags it high intent and records one match event per keyword,
          all in one unit of work.

        4. Booking feedback (`mark_matches_booked`):
        - Stamps booked_at on the lead's match events of the last 7 days.
          Runs inside the caller's booking unit of work.
    """

    @staticmethod
    def match_keywords(keywords: Iterable[Any], text: Optional[str]) -> List[KeywordMatch]:
        if not text or not text.strip():
            return []

        matches: List[KeywordMatch] = []
        for keyword in keywords:
            if not keyword.keyword or not _keyword_matches(keyword, text):
                continue
            matches.append(
                KeywordMatch(
                    keyword_id=keyword.id,
                    keyword=keyword.keyword,
                    scope=keyword.scope,
                    agent_id=keyword.agent_id,
                    weight=keyword.weight if keyword.weight is not None else 0.85,
                    match_type=keyword.match_type or MatchType.CONTAINS,
                )
            )

        matches.sort(key=lambda m: 0 if m.scope == KeywordScope.AGENT else 1)
        return matches

    @staticmethod
    async def score_keywords(
        db: AsyncSession,
        agency_id: UUID,
        text: Optional[str],
        agent_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> List[KeywordMatch]:
        if not text or not text.strip():
            return []
        now = now or datetime.utcnow()
        keywords = await crud_keyword.get_active_keywords(db, agency_id, now, agent_id=agent_id)
        return KeywordScoringEngine.match_keywords(keywords, text)

    @staticmethod
    async def apply_transcript(
        db: AsyncSession,
        lead_id: UUID,
        text: Optional[str],
        agent_id: Optional[UUID] = None,
        call_id: Optional[UUID] = None,
        source: str = DEFAULT_SOURCE,
        now: Optional[datetime] = None,
    ) -> TranscriptApplyResponse:
        now = now or datetime.utcnow()
        lead = await crud_lead.get_lead_by_id(db, lead_id)
        if not lead:
            raise EntityNotFound("lead", lead_id)

        matches = await KeywordScoringEngine.score_keywords(db, lead.agency_id, text, agent_id, now)
        if not matches:
            return TranscriptApplyResponse(
                lead_id=lead.id,
                matches=[],
                intent_score=lead.intent_score,
                is_high_intent=bool(lead.is_high_intent),
            )

        breakdown = _keyword_breakdown(lead.intent_reason_breakdown, matches, source, now)
        previous_score = lead.intent_score

        async with UnitOfWork(db) as uow:
            await crud_lead.raise_intent_score(uow.session, lead.id, KEYWORD_INTENT_SCORE, breakdown)
            for match in matches:
                await crud_match_events.create_match_event(
                    uow.session,
                    agency_id=lead.agency_id,
                    keyword_id=match.keyword_id,
                    source=source,
                    lead_id=lead.id,
                    agent_id=match.agent_id,
                    call_id=call_id,
                    matched_text=match.keyword,
                )
            await crud_events.create_event(
                uow.session,
                "keyword_match",
                lead_id=lead.id,
                load_id=lead.load_id,
                agent_id=agent_id,
                meta={"keywords": [m.keyword for m in matches], "source": source, "previous_score": previous_score},
            )

        lead = await crud_lead.get_lead_by_id(db, lead_id)
        logger.info(
            "Keyword match on lead %s: %s (intent %s -> %s)",
            lead_id, [m.keyword for m in matches], previous_score, lead.intent_score,
        )
        return TranscriptApplyResponse(
            lead_id=lead.id,
            matches=matches,
            intent_score=lead.intent_score,
            is_high_intent=bool(lead.is_high_intent),
        )

    @staticmethod
    async def mark_matches_booked(db: AsyncSession, lead_id: UUID, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        marked = await crud_match_events.mark_events_booked(db, lead_id, since=now - BOOKED_LOOKBACK, booked_at=now)
        if marked:
            logger.debug("Marked %d keyword match event(s) booked for lead %s", marked, lead_id)
        return marked


def adjusted_intent_score(prior: Optional[int]) -> int:
    """Score after a keyword match: at least 85, never lower than before."""
    return max(prior or 0, KEYWORD_INTENT_SCORE)


def _keyword_matches(keyword: Any, text: str) -> bool:
    flags = 0 if keyword.case_sensitive else re.IGNORECASE
    match_type = keyword.match_type or MatchType.CONTAINS

    if match_type == MatchType.REGEX:
        try:
            return re.search(keyword.keyword, text, flags) is not None
        except re.error as e:
            logger.warning("Invalid keyword pattern %r (%s): %s", keyword.keyword, keyword.id, e)
            return False

    if match_type == MatchType.EXACT:
        pattern = r"(?<!\w)" + re.escape(keyword.keyword) + r"(?!\w)"
        return re.search(pattern, text, flags) is not None

    if keyword.case_sensitive:
        return keyword.keyword in text
    return keyword.keyword.lower() in text.lower()


def _keyword_breakdown(prior: Any, matches: List[KeywordMatch], source: str, now: datetime) -> dict:
    entry = {
        "keywords": [m.keyword for m in matches],
        "keyword_ids": [str(m.keyword_id) for m in matches],
        "scopes": [m.scope.value for m in matches],
        "source": source,
        "matched_at": now.isoformat(),
    }
    if isinstance(prior, dict):
        return {**prior, "keyword_match": entry}
    if isinstance(prior, list) and prior:
        # legacy list-of-strings breakdown is kept alongside
        return {"reasons": prior, "keyword_match": entry}
    return {"keyword_match": entry}
