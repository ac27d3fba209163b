# brokerdesk/crud/lead.py
from typing import Iterable, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_, case
from uuid import UUID, uuid4
from datetime import datetime

from brokerdesk.models import Lead
from brokerdesk.models.enums import LeadStatus


# --- Insert Lead (call ingestion / AI booking flow) ---
async def create_lead(db: AsyncSession, agency_id: UUID, caller_phone: str, **fields) -> Lead:
    now = datetime.utcnow()
    new_lead = Lead(
        id=fields.pop("id", None) or uuid4(),
        agency_id=agency_id,
        caller_phone=caller_phone,
        status=LeadStatus.PENDING,
        created_at=fields.pop("created_at", None) or now,
        updated_at=now,
        **fields,
    )
    db.add(new_lead)
    await db.flush()
    return new_lead


# --- Fetch Lead by ID (always re-read from the store) ---
async def get_lead_by_id(db: AsyncSession, lead_id: UUID) -> Lead | None:
    result = await db.execute(
        select(Lead).where(Lead.id == lead_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_leads_by_ids(db: AsyncSession, lead_ids: Iterable[UUID]) -> Sequence[Lead]:
    ids = list(lead_ids)
    if not ids:
        return []
    result = await db.execute(
        select(Lead).where(Lead.id.in_(ids)).execution_options(populate_existing=True)
    )
    return result.scalars().all()


# --- Conditional status transition ---
async def transition_lead(
    db: AsyncSession,
    lead_id: UUID,
    from_statuses: Iterable[LeadStatus],
    values: dict,
    *criteria,
) -> bool:
    """
    UPDATE leads SET ... WHERE id = :id AND status IN (:from_statuses) [AND criteria].

    Returns True when exactly one row changed. The status check happens in
    the same statement as the write, so a concurrent transition makes this
    return False instead of overwriting.
    """
    stmt = (
        update(Lead)
        .where(Lead.id == lead_id, Lead.status.in_(list(from_statuses)), *criteria)
        .values(**values, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# --- Intent fields (keyword matches) ---
async def raise_intent_score(db: AsyncSession, lead_id: UUID, floor: int, breakdown: dict) -> bool:
    """Raise intent_score to at least `floor` (never lowers it) and flag high intent."""
    stmt = (
        update(Lead)
        .where(Lead.id == lead_id)
        .values(
            intent_score=case(
                (Lead.intent_score.is_(None), floor),
                (Lead.intent_score < floor, floor),
                else_=Lead.intent_score,
            ),
            is_high_intent=True,
            intent_reason_breakdown=breakdown,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


# --- Leads attached to a load ---
async def get_open_leads_for_load(db: AsyncSession, agency_id: UUID, load_id: UUID) -> Sequence[Lead]:
    """Pending/claimed leads of the agency that reference `load_id`, newest first."""
    result = await db.execute(
        select(Lead)
        .where(
            Lead.agency_id == agency_id,
            Lead.load_id == load_id,
            Lead.status.in_([LeadStatus.PENDING, LeadStatus.CLAIMED]),
        )
        .order_by(Lead.created_at.desc())
    )
    return result.scalars().all()


async def get_leads_attached_to_load(db: AsyncSession, load_id: UUID, booked_lead_id: UUID | None) -> Sequence[Lead]:
    conditions = [Lead.load_id == load_id]
    if booked_lead_id:
        conditions.append(Lead.id == booked_lead_id)
    result = await db.execute(
        select(Lead).where(or_(*conditions)).execution_options(populate_existing=True)
    )
    return result.scalars().all()


# --- Carrier-based candidates for attribution ---
async def find_leads_by_carrier(
    db: AsyncSession,
    agency_id: UUID,
    load_id: UUID,
    carrier_mc: str | None,
    carrier_usdot: str | None,
    since: datetime,
) -> Sequence[Lead]:
    carrier_match = []
    if carrier_mc:
        carrier_match.append(Lead.carrier_mc == carrier_mc)
    if carrier_usdot:
        carrier_match.append(Lead.carrier_usdot == carrier_usdot)
    if not carrier_match:
        return []

    result = await db.execute(
        select(Lead)
        .where(
            Lead.agency_id == agency_id,
            Lead.status.in_([LeadStatus.PENDING, LeadStatus.CLAIMED]),
            Lead.created_at >= since,
            or_(Lead.load_id.is_(None), Lead.load_id == load_id),
            or_(*carrier_match),
        )
        .order_by(Lead.created_at.desc())
    )
    return result.scalars().all()


# --- Work queue / metrics reads ---
async def get_actionable_leads(db: AsyncSession, agency_id: UUID, agent_id: UUID | None = None, limit: int = 100) -> Sequence[Lead]:
    """Pending leads plus leads claimed by `agent_id`."""
    visible = [Lead.status == LeadStatus.PENDING]
    if agent_id:
        visible.append(and_(Lead.status == LeadStatus.CLAIMED, Lead.claimed_by == agent_id))
    result = await db.execute(
        select(Lead)
        .where(Lead.agency_id == agency_id, or_(*visible))
        .order_by(Lead.created_at.asc())
        .limit(limit)
    )
    return result.scalars().all()


async def get_leads_in_window(
    db: AsyncSession,
    agency_id: UUID,
    start: datetime,
    end: datetime,
    agent_id: UUID | None = None,
) -> Sequence[Lead]:
    stmt = select(Lead).where(
        Lead.agency_id == agency_id,
        Lead.created_at >= start,
        Lead.created_at <= end,
    )
    if agent_id:
        stmt = stmt.where(or_(Lead.claimed_by == agent_id, Lead.booked_by == agent_id))
    result = await db.execute(stmt.order_by(Lead.created_at.asc()))
    return result.scalars().all()
