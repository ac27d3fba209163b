import logging
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.core.config import settings
from brokerdesk.crud import calls as crud_calls
from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import load as crud_load
from brokerdesk.crud import lead_events as crud_events
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models import Lead, Load
from brokerdesk.models.enums import LeadStatus, LoadStatus
from brokerdesk.schemas.load import AttributionResult
from brokerdesk.services.errors import EntityNotFound, ResolutionValidationError, TransitionConflict
from brokerdesk.services.keyword_scoring import KeywordScoringEngine

logger = logging.getLogger(__name__)


class BookingAttributionMatcher:
    """
        Links a booked load to the lead that most plausibly produced it.

        Policy (first match wins):
        0. An explicit lead supplied by the caller ("explicit").
        1. A pending/claimed lead of the agency already pointing at the load
           ("load_reference"), newest first.
        2. The call adjacent to the booking (the load's booked_call_id, else
           the latest call that mentioned the load number inside the window)
           supplies MC/DOT; the newest pending/claimed lead inside the window
           with that MC ("carrier_mc") or DOT ("carrier_dot") wins.
        3. No match: the load stays booked, unattributed. Not an error.

        Each link is one unit of work (or joins the booking's own when the
        lead is named at booking time): lead -> booked with the load's booking
        agent (conditional on still being pending/claimed), load.booked_lead_id
        set (conditional on being booked and unattributed), lead's keyword
        match events marked booked.
        A candidate that loses its race is skipped; the load side failing
        aborts with TransitionConflict.
    """

    @staticmethod
    async def attribute_booking(
        db: AsyncSession,
        load_id: UUID,
        lead_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> AttributionResult:
        now = now or datetime.utcnow()
        load = await crud_load.get_load_by_id(db, load_id)
        if not load:
            raise EntityNotFound("load", load_id)
        if load.status != LoadStatus.BOOKED:
            raise TransitionConflict("load", load_id, "attribute", load.status.value)

        if load.booked_lead_id:
            # already linked, nothing to do
            return AttributionResult(
                matched=True, match_type=load.attribution_match_type, lead_id=load.booked_lead_id
            )

        if lead_id:
            lead = await crud_lead.get_lead_by_id(db, lead_id)
            if not lead:
                raise EntityNotFound("lead", lead_id)
            if lead.agency_id != load.agency_id:
                raise ResolutionValidationError("Lead belongs to another agency", field="lead_id")
            if not await BookingAttributionMatcher._link(db, load, lead, "explicit", now):
                raise TransitionConflict("lead", lead_id, "attribute", lead.status.value)
            return AttributionResult(matched=True, match_type="explicit", lead_id=lead.id)

        for candidate, match_type in await BookingAttributionMatcher.find_candidates(db, load, now):
            if await BookingAttributionMatcher._link(db, load, candidate, match_type, now):
                return AttributionResult(matched=True, match_type=match_type, lead_id=candidate.id)
            logger.info("Attribution candidate %s for load %s lost a race, skipping", candidate.id, load.load_number)

        logger.info("No lead attributed to booked load %s", load.load_number)
        return AttributionResult(matched=False)

    @staticmethod
    async def find_candidates(db: AsyncSession, load: Load, now: datetime) -> List[Tuple[Lead, str]]:
        """Ordered (lead, match_type) candidates for rules 1 and 2."""
        candidates: List[Tuple[Lead, str]] = []
        seen = set()

        for lead in await crud_lead.get_open_leads_for_load(db, load.agency_id, load.id):
            candidates.append((lead, "load_reference"))
            seen.add(lead.id)

        since = now - timedelta(hours=settings.ATTRIBUTION_WINDOW_HOURS)
        call = None
        if load.booked_call_id:
            call = await crud_calls.get_call_by_id(db, load.booked_call_id)
        if call is None:
            call = await crud_calls.get_latest_call_for_load_number(db, load.agency_id, load.load_number, since)
        if call is None or not (call.carrier_mc or call.carrier_usdot):
            return candidates

        for lead in await crud_lead.find_leads_by_carrier(
            db, load.agency_id, load.id, call.carrier_mc, call.carrier_usdot, since
        ):
            if lead.id in seen:
                continue
            seen.add(lead.id)
            if call.carrier_mc and lead.carrier_mc == call.carrier_mc:
                candidates.append((lead, "carrier_mc"))
            else:
                candidates.append((lead, "carrier_dot"))
        return candidates

    @staticmethod
    async def link_lead(session: AsyncSession, load: Load, lead: Lead, match_type: str, now: datetime) -> bool:
        """
        Book `lead` against the booked `load` inside the caller's unit of work.

        The lead inherits the load's booking actor and time. Returns False when
        the lead is no longer pending/claimed; raises TransitionConflict when
        the load was reopened or attributed in the meantime.
        """
        if not load.booked_by:
            raise ResolutionValidationError(
                f"Load {load.load_number} has no booking agent to attribute", field="agent_id"
            )
        lead_booked = await crud_lead.transition_lead(
            session, lead.id, [LeadStatus.PENDING, LeadStatus.CLAIMED],
            {
                "status": LeadStatus.BOOKED,
                "booked_by": load.booked_by,
                "booked_at": load.booked_at or now,
                "resolved_at": now,
                "load_id": load.id,
            },
        )
        if not lead_booked:
            return False

        load_linked = await crud_load.transition_load(
            session, load.id, [LoadStatus.BOOKED],
            {"booked_lead_id": lead.id, "attribution_match_type": match_type},
            Load.booked_lead_id.is_(None),
        )
        if not load_linked:
            raise TransitionConflict(
                "load", load.id, "attribute",
                detail=f"Load {load.load_number} was reopened or attributed concurrently",
            )

        await KeywordScoringEngine.mark_matches_booked(session, lead.id, now)
        await crud_events.create_event(
            session, "attributed", lead_id=lead.id, load_id=load.id, agent_id=load.booked_by,
            previous_status=lead.status, new_status=LeadStatus.BOOKED,
            meta={"match_type": match_type, "booked_source": load.booked_source.value},
        )
        return True

    @staticmethod
    async def _link(db: AsyncSession, load: Load, lead: Lead, match_type: str, now: datetime) -> bool:
        """One unit of work per candidate. False if the lead was no longer open."""
        async with UnitOfWork(db) as uow:
            linked = await BookingAttributionMatcher.link_lead(uow.session, load, lead, match_type, now)
        if linked:
            logger.info("Load %s attributed to lead %s (%s)", load.load_number, lead.id, match_type)
        return linked
