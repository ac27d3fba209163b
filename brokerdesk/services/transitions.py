"""Entity-agnostic entry points for the shared lead/load verbs."""

from typing import Optional, Union
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.models import Lead, Load
from brokerdesk.services.lead_services import LeadServices
from brokerdesk.services.load_services import LoadServices

ENTITY_TYPES = ("lead", "load")


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type '{entity_type}'")


async def claim(db: AsyncSession, entity_type: str, entity_id: UUID, agent_id: Optional[UUID]) -> Union[Lead, Load]:
    _check_entity_type(entity_type)
    if entity_type == "lead":
        return await LeadServices.claim_lead(db, entity_id, agent_id)
    return await LoadServices.claim_load(db, entity_id, agent_id)


async def release(db: AsyncSession, entity_type: str, entity_id: UUID, agent_id: Optional[UUID]) -> Union[Lead, Load]:
    _check_entity_type(entity_type)
    if entity_type == "lead":
        return await LeadServices.release_lead(db, entity_id, agent_id)
    return await LoadServices.release_load(db, entity_id, agent_id)


async def reopen(db: AsyncSession, entity_type: str, entity_id: UUID, agent_id: Optional[UUID] = None) -> Union[Lead, Load]:
    _check_entity_type(entity_type)
    if entity_type == "lead":
        return await LeadServices.reopen_lead(db, entity_id, agent_id)
    return await LoadServices.reopen_load(db, entity_id, agent_id)
