import logging
from typing import Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import load as crud_load
from brokerdesk.crud import lead_events as crud_events
from brokerdesk.crud import keyword_match_events as crud_match_events
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models import Lead
from brokerdesk.models.enums import LeadStatus, LoadStatus, CloseReason, BookedSource
from brokerdesk.schemas.lead import LeadOut, LeadResolveResponse, LeadPriorityResponse, LeadQueueItem
from brokerdesk.services.errors import EntityNotFound, TransitionConflict, ResolutionValidationError
from brokerdesk.services.keyword_scoring import KeywordScoringEngine
from brokerdesk.services.keyword_services import KeywordServices
from brokerdesk.services.priority_ranker import PriorityRanker, format_time_in_queue

logger = logging.getLogger(__name__)

RESOLVE_OUTCOMES = ("booked", "covered", "closed", "callback_needed", "no_answer", "not_a_fit")
# Outcomes that close the lead with a fixed reason
FIXED_CLOSE_REASONS = {"covered": CloseReason.COVERED, "not_a_fit": CloseReason.NOT_A_FIT}

# Everything claim/book/close writes; reopen puts all of it back to NULL
LEAD_RESET_VALUES = {
    "claimed_by": None,
    "claimed_at": None,
    "booked_by": None,
    "booked_at": None,
    "closed_at": None,
    "close_reason": None,
    "resolved_at": None,
    "load_id": None,
}


async def raise_lead_conflict(db: AsyncSession, lead_id: UUID, action: str) -> None:
    """A conditional update matched nothing: report why from the current row."""
    lead = await crud_lead.get_lead_by_id(db, lead_id)
    if not lead:
        raise EntityNotFound("lead", lead_id)
    logger.info("Conflict: cannot %s lead %s (status=%s)", action, lead_id, lead.status.value)
    raise TransitionConflict("lead", lead_id, action, lead.status.value)


def _actionable_by(agent_id: UUID):
    """Pending, or claimed by `agent_id` itself."""
    return or_(Lead.status == LeadStatus.PENDING, Lead.claimed_by == agent_id)


class LeadServices:

    @staticmethod
    async def get_lead(db: AsyncSession, lead_id: UUID) -> Lead:
        lead = await crud_lead.get_lead_by_id(db, lead_id)
        if not lead:
            raise EntityNotFound("lead", lead_id)
        return lead

    # ---------------- CLAIM / RELEASE ----------------
    @staticmethod
    async def claim_lead(db: AsyncSession, lead_id: UUID, agent_id: Optional[UUID], now: Optional[datetime] = None) -> Lead:
        """
        pending -> claimed.

        The status check and the write are one statement, so of two agents
        claiming at the same time exactly one wins; the other gets
        TransitionConflict with the status it lost to.
        """
        if not agent_id:
            raise ResolutionValidationError("agent_id is required to claim a lead", field="agent_id")
        now = now or datetime.utcnow()

        async with UnitOfWork(db) as uow:
            claimed = await crud_lead.transition_lead(
                uow.session, lead_id, [LeadStatus.PENDING],
                {"status": LeadStatus.CLAIMED, "claimed_by": agent_id, "claimed_at": now},
            )
            if not claimed:
                await raise_lead_conflict(uow.session, lead_id, "claim")
            await crud_events.create_event(
                uow.session, "claimed", lead_id=lead_id, agent_id=agent_id,
                previous_status=LeadStatus.PENDING, new_status=LeadStatus.CLAIMED,
            )

        logger.info("Lead %s claimed by %s", lead_id, agent_id)
        return await LeadServices.get_lead(db, lead_id)

    @staticmethod
    async def release_lead(db: AsyncSession, lead_id: UUID, agent_id: Optional[UUID]) -> Lead:
        """claimed -> pending, only by the claim holder."""
        if not agent_id:
            raise ResolutionValidationError("agent_id is required to release a lead", field="agent_id")

        async with UnitOfWork(db) as uow:
            released = await crud_lead.transition_lead(
                uow.session, lead_id, [LeadStatus.CLAIMED],
                {"status": LeadStatus.PENDING, "claimed_by": None, "claimed_at": None},
                Lead.claimed_by == agent_id,
            )
            if not released:
                await raise_lead_conflict(uow.session, lead_id, "release")
            await crud_events.create_event(
                uow.session, "released", lead_id=lead_id, agent_id=agent_id,
                previous_status=LeadStatus.CLAIMED, new_status=LeadStatus.PENDING,
            )

        logger.info("Lead %s released by %s", lead_id, agent_id)
        return await LeadServices.get_lead(db, lead_id)

    # ---------------- RESOLVE ----------------
    @staticmethod
    async def resolve_lead(
        db: AsyncSession,
        lead_id: UUID,
        outcome: str,
        agent_id: Optional[UUID],
        load_id: Optional[UUID] = None,
        close_reason: Optional[CloseReason] = None,
        booked_source: BookedSource = BookedSource.MANUAL,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LeadResolveResponse:
        """
        Apply a disposition to a lead.

        Workflow:
        1. Validate the payload for the outcome (nothing is written on failure).
        2. Apply the lead update as one conditional UPDATE: the lead must be
           pending, or claimed by the resolving agent.
        3. Apply the cross-entity effect in the same unit of work:
           - booked: the load goes open (or claimed by the same agent) ->
             booked and points back at the lead; keyword match events of the
             lead are marked booked and the load's keyword suggestions are
             recorded. A load claimed by another agent is a conflict.
           - closed / covered / not_a_fit: the attached load (payload load or
             lead.load_id) is closed with the same reason unless it is already
             booked or closed, or claimed by another agent.
           - callback_needed / no_answer: timestamps only, status unchanged.
        4. Append a `resolved` lead event.

        Args:
            outcome: one of booked, covered, closed, callback_needed, no_answer, not_a_fit.
            load_id: required for booked.
            close_reason: required for closed.
            booked_source: recorded on the load for booked (manual or ai).

        Raises:
            ResolutionValidationError: missing load/reason/agent or unknown outcome.
            EntityNotFound: lead or load does not exist.
            TransitionConflict: lead (or load) was not in a resolvable state.
        """
        if outcome not in RESOLVE_OUTCOMES:
            raise ResolutionValidationError(f"Unknown outcome '{outcome}'", field="outcome")
        if not agent_id:
            raise ResolutionValidationError("agent_id is required to resolve a lead", field="agent_id")
        if outcome == "booked" and not load_id:
            raise ResolutionValidationError("A load is required to book a lead", field="load_id")
        if outcome == "closed" and not close_reason:
            raise ResolutionValidationError("A close reason is required to close a lead", field="close_reason")

        now = now or datetime.utcnow()
        lead = await LeadServices.get_lead(db, lead_id)
        previous_status = lead.status
        meta = {"outcome": outcome}
        if notes:
            meta["notes"] = notes

        if outcome == "booked":
            load = await crud_load.get_load_by_id(db, load_id)
            if not load:
                raise EntityNotFound("load", load_id)
            if load.agency_id != lead.agency_id:
                raise ResolutionValidationError("Load belongs to another agency", field="load_id")

            async with UnitOfWork(db) as uow:
                booked = await crud_lead.transition_lead(
                    uow.session, lead_id, [LeadStatus.PENDING, LeadStatus.CLAIMED],
                    {
                        "status": LeadStatus.BOOKED,
                        "booked_by": agent_id,
                        "booked_at": now,
                        "resolved_at": now,
                        "load_id": load.id,
                    },
                    _actionable_by(agent_id),
                )
                if not booked:
                    await raise_lead_conflict(uow.session, lead_id, "book")

                load_booked = await crud_load.transition_load(
                    uow.session, load.id, [LoadStatus.OPEN, LoadStatus.CLAIMED],
                    {
                        "status": LoadStatus.BOOKED,
                        "booked_by": agent_id,
                        "booked_at": now,
                        "booked_source": booked_source,
                        "booked_lead_id": lead_id,
                        "attribution_match_type": "explicit",
                    },
                    crud_load.open_or_claimed_by(agent_id),
                )
                if not load_booked:
                    current = await crud_load.get_load_by_id(uow.session, load.id)
                    raise TransitionConflict("load", load.id, "book", current.status.value if current else None)

                await KeywordScoringEngine.mark_matches_booked(uow.session, lead_id, now)
                await KeywordServices.record_suggestions(uow.session, load)
                meta["load_id"] = str(load.id)
                await crud_events.create_event(
                    uow.session, "resolved", lead_id=lead_id, load_id=load.id, agent_id=agent_id,
                    previous_status=previous_status, new_status=LeadStatus.BOOKED, meta=meta,
                )

            logger.info("Lead %s booked on load %s by %s", lead_id, load.load_number, agent_id)
            lead = await LeadServices.get_lead(db, lead_id)
            return LeadResolveResponse(
                lead=LeadOut.model_validate(lead), outcome=outcome,
                load_id=load.id, load_status=LoadStatus.BOOKED.value,
            )

        if outcome in ("closed", "covered", "not_a_fit"):
            reason = FIXED_CLOSE_REASONS.get(outcome, close_reason)
            target_load_id = load_id or lead.load_id
            load_status = None

            async with UnitOfWork(db) as uow:
                closed = await crud_lead.transition_lead(
                    uow.session, lead_id, [LeadStatus.PENDING, LeadStatus.CLAIMED],
                    {"status": LeadStatus.CLOSED, "closed_at": now, "close_reason": reason, "resolved_at": now},
                    _actionable_by(agent_id),
                )
                if not closed:
                    await raise_lead_conflict(uow.session, lead_id, "close")

                if target_load_id:
                    # a booked or closed load, or one another agent holds, is left alone
                    load_closed = await crud_load.transition_load(
                        uow.session, target_load_id, [LoadStatus.OPEN, LoadStatus.CLAIMED],
                        {"status": LoadStatus.CLOSED, "closed_at": now, "close_reason": reason},
                        crud_load.open_or_claimed_by(agent_id),
                    )
                    if load_closed:
                        load_status = LoadStatus.CLOSED.value
                        meta["load_id"] = str(target_load_id)

                meta["close_reason"] = reason.value
                await crud_events.create_event(
                    uow.session, "resolved", lead_id=lead_id, load_id=target_load_id, agent_id=agent_id,
                    previous_status=previous_status, new_status=LeadStatus.CLOSED, meta=meta,
                )

            logger.info("Lead %s closed (%s) by %s", lead_id, reason.value, agent_id)
            lead = await LeadServices.get_lead(db, lead_id)
            return LeadResolveResponse(
                lead=LeadOut.model_validate(lead), outcome=outcome,
                load_id=target_load_id, load_status=load_status,
            )

        # callback_needed / no_answer: no status change
        stamps = {"last_contact_attempt_at": now}
        if outcome == "callback_needed":
            stamps["callback_requested_at"] = now

        async with UnitOfWork(db) as uow:
            updated = await crud_lead.transition_lead(
                uow.session, lead_id, [LeadStatus.PENDING, LeadStatus.CLAIMED], stamps,
                _actionable_by(agent_id),
            )
            if not updated:
                await raise_lead_conflict(uow.session, lead_id, "resolve")
            meta["action"] = "callback_scheduled" if outcome == "callback_needed" else "no_answer"
            await crud_events.create_event(
                uow.session, "resolved", lead_id=lead_id, agent_id=agent_id,
                previous_status=previous_status, new_status=previous_status, meta=meta,
            )

        logger.info("Lead %s: %s logged by %s", lead_id, outcome, agent_id)
        lead = await LeadServices.get_lead(db, lead_id)
        return LeadResolveResponse(lead=LeadOut.model_validate(lead), outcome=outcome, load_id=lead.load_id)

    # ---------------- REOPEN ----------------
    @staticmethod
    async def reopen_lead(db: AsyncSession, lead_id: UUID, agent_id: Optional[UUID] = None) -> Lead:
        """
        booked/closed -> pending with every claim/book/close field cleared,
        load_id included. If the lead was the load's attributed lead, the
        load's back-reference is cleared in the same unit of work.
        """
        lead = await LeadServices.get_lead(db, lead_id)
        previous_status = lead.status
        previous_load_id = lead.load_id

        async with UnitOfWork(db) as uow:
            reopened = await crud_lead.transition_lead(
                uow.session, lead_id, [LeadStatus.BOOKED, LeadStatus.CLOSED],
                {"status": LeadStatus.PENDING, **LEAD_RESET_VALUES},
            )
            if not reopened:
                await raise_lead_conflict(uow.session, lead_id, "reopen")
            if previous_load_id:
                await crud_load.clear_booked_lead(uow.session, previous_load_id, lead_id)
            await crud_events.create_event(
                uow.session, "reopened", lead_id=lead_id, load_id=previous_load_id, agent_id=agent_id,
                previous_status=previous_status, new_status=LeadStatus.PENDING,
            )

        logger.info("Lead %s reopened (was %s)", lead_id, previous_status.value)
        return await LeadServices.get_lead(db, lead_id)

    # ---------------- PRIORITY ----------------
    @staticmethod
    async def get_priority(db: AsyncSession, lead_id: UUID, now: Optional[datetime] = None) -> LeadPriorityResponse:
        now = now or datetime.utcnow()
        lead = await LeadServices.get_lead(db, lead_id)
        matches = await LeadServices._recent_matches(db, lead)
        priority = PriorityRanker.rank_lead(lead, matches, now)
        return LeadPriorityResponse(
            lead_id=lead.id,
            priority=priority,
            time_in_queue=format_time_in_queue(priority.time_in_queue_hours),
        )

    @staticmethod
    async def get_queue(
        db: AsyncSession,
        agency_id: UUID,
        agent_id: Optional[UUID] = None,
        limit: int = 50,
        now: Optional[datetime] = None,
    ) -> list[LeadQueueItem]:
        """Pending leads (plus the agent's own claims), best first."""
        now = now or datetime.utcnow()
        leads = await crud_lead.get_actionable_leads(db, agency_id, agent_id, limit=limit)
        matches_by_lead = {lead.id: await LeadServices._recent_matches(db, lead) for lead in leads}
        ranked = PriorityRanker.rank_queue(leads, matches_by_lead, now)
        return [
            LeadQueueItem(
                lead=LeadOut.model_validate(item["lead"]),
                priority=item["priority"],
                time_in_queue=format_time_in_queue(item["priority"].time_in_queue_hours),
            )
            for item in ranked
        ]

    @staticmethod
    async def _recent_matches(db: AsyncSession, lead: Lead) -> list[dict]:
        """Keyword matches recorded for the lead, as ranker input (one per keyword)."""
        events = await crud_match_events.get_events_with_keywords(db, lead.id)
        seen = set()
        matches = []
        for keyword_id, keyword, scope in events:
            if keyword_id in seen:
                continue
            seen.add(keyword_id)
            matches.append({"keyword": keyword, "scope": scope})
        # personal keywords first, as the scoring engine orders them
        matches.sort(key=lambda m: 0 if m["scope"] == "agent" else 1)
        return matches
