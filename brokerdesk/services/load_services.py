import logging
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.crud import calls as crud_calls
from brokerdesk.crud import lead as crud_lead
from brokerdesk.crud import load as crud_load
from brokerdesk.crud import lead_events as crud_events
from brokerdesk.db.unit_of_work import UnitOfWork
from brokerdesk.models import Load
from brokerdesk.models.enums import LeadStatus, LoadStatus, CloseReason, BookedSource
from brokerdesk.schemas.load import AttributionResult, LoadOut, LoadBookResponse, LoadCloseCoveredResponse
from brokerdesk.services.booking_attribution import BookingAttributionMatcher
from brokerdesk.services.errors import EntityNotFound, TransitionConflict, ResolutionValidationError
from brokerdesk.services.keyword_services import KeywordServices

logger = logging.getLogger(__name__)

# Reopen returns the load to its just-imported baseline
LOAD_RESET_VALUES = {
    "claimed_by": None,
    "claimed_at": None,
    "booked_by": None,
    "booked_at": None,
    "closed_at": None,
    "close_reason": None,
    "booked_source": BookedSource.MANUAL,
    "booked_lead_id": None,
    "booked_call_id": None,
    "attribution_match_type": None,
}


async def raise_load_conflict(db: AsyncSession, load_id: UUID, action: str) -> None:
    load = await crud_load.get_load_by_id(db, load_id)
    if not load:
        raise EntityNotFound("load", load_id)
    logger.info("Conflict: cannot %s load %s (status=%s)", action, load_id, load.status.value)
    raise TransitionConflict("load", load_id, action, load.status.value)


class LoadServices:

    @staticmethod
    async def get_load(db: AsyncSession, load_id: UUID) -> Load:
        load = await crud_load.get_load_by_id(db, load_id)
        if not load:
            raise EntityNotFound("load", load_id)
        return load

    # ---------------- CLAIM / RELEASE ----------------
    @staticmethod
    async def claim_load(db: AsyncSession, load_id: UUID, agent_id: Optional[UUID], now: Optional[datetime] = None) -> Load:
        if not agent_id:
            raise ResolutionValidationError("agent_id is required to claim a load", field="agent_id")
        now = now or datetime.utcnow()

        async with UnitOfWork(db) as uow:
            claimed = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.OPEN],
                {"status": LoadStatus.CLAIMED, "claimed_by": agent_id, "claimed_at": now},
            )
            if not claimed:
                await raise_load_conflict(uow.session, load_id, "claim")
            await crud_events.create_event(
                uow.session, "load_claimed", load_id=load_id, agent_id=agent_id,
                previous_status=LoadStatus.OPEN, new_status=LoadStatus.CLAIMED,
            )

        logger.info("Load %s claimed by %s", load_id, agent_id)
        return await LoadServices.get_load(db, load_id)

    @staticmethod
    async def release_load(db: AsyncSession, load_id: UUID, agent_id: Optional[UUID]) -> Load:
        if not agent_id:
            raise ResolutionValidationError("agent_id is required to release a load", field="agent_id")

        async with UnitOfWork(db) as uow:
            released = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.CLAIMED],
                {"status": LoadStatus.OPEN, "claimed_by": None, "claimed_at": None},
                Load.claimed_by == agent_id,
            )
            if not released:
                await raise_load_conflict(uow.session, load_id, "release")
            await crud_events.create_event(
                uow.session, "load_released", load_id=load_id, agent_id=agent_id,
                previous_status=LoadStatus.CLAIMED, new_status=LoadStatus.OPEN,
            )

        logger.info("Load %s released by %s", load_id, agent_id)
        return await LoadServices.get_load(db, load_id)

    # ---------------- BOOK ----------------
    @staticmethod
    async def book_load(
        db: AsyncSession,
        load_id: UUID,
        agent_id: Optional[UUID] = None,
        booked_source: BookedSource = BookedSource.MANUAL,
        call_id: Optional[UUID] = None,
        lead_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> LoadBookResponse:
        """
        Book a load from the load side (agent action or AI booking).

        Workflow:
        1. Resolve the acting agent: `agent_id`, else the agent the booking
           call was routed to (AI bookings). No acting agent is rejected
           before any write.
        2. open (or claimed by the same agent) -> booked, recording the
           source and the adjacent call, plus keyword suggestions.
        3. Attribution:
           - explicit `lead_id`: linked in the same unit of work, so a lead
             that is no longer pending/claimed rolls the booking back;
           - otherwise the matcher's policy runs after the booking commits.
             An attribution miss is returned, not raised.
        """
        now = now or datetime.utcnow()
        load = await LoadServices.get_load(db, load_id)
        previous_status = load.status

        if not agent_id and call_id:
            call = await crud_calls.get_call_by_id(db, call_id)
            if not call:
                raise EntityNotFound("call", call_id)
            agent_id = call.agent_id
        if not agent_id:
            raise ResolutionValidationError(
                "An acting agent is required to book a load (agent_id, or a call routed to an agent)",
                field="agent_id",
            )

        lead = None
        if lead_id:
            lead = await crud_lead.get_lead_by_id(db, lead_id)
            if not lead:
                raise EntityNotFound("lead", lead_id)
            if lead.agency_id != load.agency_id:
                raise ResolutionValidationError("Lead belongs to another agency", field="lead_id")

        async with UnitOfWork(db) as uow:
            booked = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.OPEN, LoadStatus.CLAIMED],
                {
                    "status": LoadStatus.BOOKED,
                    "booked_by": agent_id,
                    "booked_at": now,
                    "booked_source": booked_source,
                    "booked_call_id": call_id,
                },
                crud_load.open_or_claimed_by(agent_id),
            )
            if not booked:
                await raise_load_conflict(uow.session, load_id, "book")
            await KeywordServices.record_suggestions(uow.session, load)
            await crud_events.create_event(
                uow.session, "load_booked", load_id=load_id, agent_id=agent_id,
                previous_status=previous_status, new_status=LoadStatus.BOOKED,
                meta={"booked_source": booked_source.value},
            )

            if lead is not None:
                booked_load = await crud_load.get_load_by_id(uow.session, load_id)
                if not await BookingAttributionMatcher.link_lead(uow.session, booked_load, lead, "explicit", now):
                    current = await crud_lead.get_lead_by_id(uow.session, lead_id)
                    logger.info("Booking of load %s aborted: lead %s is %s",
                                load.load_number, lead_id, current.status.value)
                    raise TransitionConflict("lead", lead_id, "book", current.status.value)

        logger.info("Load %s booked (%s) by %s", load.load_number, booked_source.value, agent_id)
        if lead is not None:
            attribution = AttributionResult(matched=True, match_type="explicit", lead_id=lead_id)
        else:
            attribution = await BookingAttributionMatcher.attribute_booking(db, load_id, now=now)
        load = await LoadServices.get_load(db, load_id)
        return LoadBookResponse(load=LoadOut.model_validate(load), attribution=attribution)

    # ---------------- CLOSE ----------------
    @staticmethod
    async def close_load(
        db: AsyncSession,
        load_id: UUID,
        close_reason: Optional[CloseReason],
        agent_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> Load:
        if not close_reason:
            raise ResolutionValidationError("A close reason is required to close a load", field="close_reason")
        if close_reason == CloseReason.COVERED:
            return (await LoadServices.close_covered(db, load_id, agent_id, now)).load

        now = now or datetime.utcnow()
        async with UnitOfWork(db) as uow:
            closed = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.OPEN, LoadStatus.CLAIMED],
                {"status": LoadStatus.CLOSED, "closed_at": now, "close_reason": close_reason},
                crud_load.open_or_claimed_by(agent_id),
            )
            if not closed:
                await raise_load_conflict(uow.session, load_id, "close")
            await crud_events.create_event(
                uow.session, "load_closed", load_id=load_id, agent_id=agent_id,
                new_status=LoadStatus.CLOSED, meta={"close_reason": close_reason.value},
            )

        logger.info("Load %s closed (%s)", load_id, close_reason.value)
        return await LoadServices.get_load(db, load_id)

    @staticmethod
    async def close_covered(
        db: AsyncSession,
        load_id: UUID,
        agent_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> LoadCloseCoveredResponse:
        """
        Close a load as covered, together with its open leads.

        Leads already booked or closed keep their state; a lead that changes
        status concurrently is simply not closed. A load claimed by another
        agent is a conflict.
        """
        now = now or datetime.utcnow()
        load = await LoadServices.get_load(db, load_id)
        closed_lead_ids: List[UUID] = []

        async with UnitOfWork(db) as uow:
            closed = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.OPEN, LoadStatus.CLAIMED],
                {"status": LoadStatus.CLOSED, "closed_at": now, "close_reason": CloseReason.COVERED},
                crud_load.open_or_claimed_by(agent_id),
            )
            if not closed:
                await raise_load_conflict(uow.session, load_id, "close as covered")

            for lead in await crud_lead.get_leads_attached_to_load(uow.session, load_id, load.booked_lead_id):
                if lead.status not in (LeadStatus.PENDING, LeadStatus.CLAIMED):
                    continue
                lead_closed = await crud_lead.transition_lead(
                    uow.session, lead.id, [LeadStatus.PENDING, LeadStatus.CLAIMED],
                    {"status": LeadStatus.CLOSED, "closed_at": now,
                     "close_reason": CloseReason.COVERED, "resolved_at": now},
                )
                if lead_closed:
                    closed_lead_ids.append(lead.id)
                    await crud_events.create_event(
                        uow.session, "resolved", lead_id=lead.id, load_id=load_id, agent_id=agent_id,
                        previous_status=lead.status, new_status=LeadStatus.CLOSED,
                        meta={"outcome": "covered", "close_reason": CloseReason.COVERED.value, "via": "load"},
                    )

            await crud_events.create_event(
                uow.session, "load_closed", load_id=load_id, agent_id=agent_id,
                previous_status=load.status, new_status=LoadStatus.CLOSED,
                meta={"close_reason": CloseReason.COVERED.value, "closed_leads": [str(i) for i in closed_lead_ids]},
            )

        logger.info("Load %s closed as covered, %d lead(s) closed", load.load_number, len(closed_lead_ids))
        load = await LoadServices.get_load(db, load_id)
        return LoadCloseCoveredResponse(load=LoadOut.model_validate(load), closed_lead_ids=closed_lead_ids)

    # ---------------- REOPEN ----------------
    @staticmethod
    async def reopen_load(db: AsyncSession, load_id: UUID, agent_id: Optional[UUID] = None) -> Load:
        """booked/closed -> open, attribution and booked_source reset to the manual baseline."""
        load = await LoadServices.get_load(db, load_id)
        previous_status = load.status

        async with UnitOfWork(db) as uow:
            reopened = await crud_load.transition_load(
                uow.session, load_id, [LoadStatus.BOOKED, LoadStatus.CLOSED],
                {"status": LoadStatus.OPEN, **LOAD_RESET_VALUES},
            )
            if not reopened:
                await raise_load_conflict(uow.session, load_id, "reopen")
            await crud_events.create_event(
                uow.session, "load_reopened", load_id=load_id, agent_id=agent_id,
                previous_status=previous_status, new_status=LoadStatus.OPEN,
            )

        logger.info("Load %s reopened (was %s)", load_id, previous_status.value)
        return await LoadServices.get_load(db, load_id)
