from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from brokerdesk.schemas.lead import (
    AgentActionRequest,
    LeadOut,
    LeadResolveRequest,
    LeadResolveResponse,
    LeadPriorityResponse,
    LeadQueueItem,
)
from brokerdesk.schemas.keyword import TranscriptApplyRequest, TranscriptApplyResponse
from brokerdesk.db.session import get_db
from brokerdesk.services.errors import ResolutionValidationError, TransitionConflict
from brokerdesk.services.keyword_scoring import KeywordScoringEngine
from brokerdesk.services.lead_services import LeadServices
from brokerdesk.services import transitions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/leads", tags=["Leads"])


@router.get(
    "/queue",
    response_model=List[LeadQueueItem],
    summary="Ranked work queue",
    description="Pending leads (plus the agent's own claims) ordered by priority score, then time in queue.",
)
async def get_queue(
    agency_id: UUID,
    agent_id: Optional[UUID] = None,
    limit: int = Query(50, ge=1, le=200, description="Maximum number of leads"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await LeadServices.get_queue(db, agency_id, agent_id, limit)
    except Exception as e:
        logger.error("Error in get_queue: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/{lead_id}", response_model=LeadOut, summary="Get a lead")
async def get_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await LeadServices.get_lead(db, lead_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/claim",
    response_model=LeadOut,
    summary="Claim a lead",
    description="pending -> claimed. Returns 409 if another agent claimed it first.",
)
async def claim_lead(lead_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.claim(db, "lead", lead_id, request.agent_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in claim_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/release", response_model=LeadOut, summary="Release a claimed lead")
async def release_lead(lead_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.release(db, "lead", lead_id, request.agent_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in release_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/resolve",
    response_model=LeadResolveResponse,
    summary="Resolve a lead",
    description="booked / covered / closed / not_a_fit / callback_needed / no_answer. Booking updates the load in the same transaction.",
)
async def resolve_lead(lead_id: UUID, request: LeadResolveRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await LeadServices.resolve_lead(
            db,
            lead_id,
            request.outcome,
            request.agent_id,
            load_id=request.load_id,
            close_reason=request.close_reason,
            booked_source=request.booked_source,
            notes=request.notes,
        )
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in resolve_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{lead_id}/reopen", response_model=LeadOut, summary="Reopen a booked or closed lead")
async def reopen_lead(lead_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.reopen(db, "lead", lead_id, request.agent_id)
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in reopen_lead: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{lead_id}/transcript",
    response_model=TranscriptApplyResponse,
    summary="Score call text against keywords",
    description="Matches the text against active keywords and raises the lead's intent score on a match.",
)
async def apply_transcript(lead_id: UUID, request: TranscriptApplyRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await KeywordScoringEngine.apply_transcript(
            db, lead_id, request.text, agent_id=request.agent_id, call_id=request.call_id, source=request.source
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in apply_transcript: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get(
    "/{lead_id}/priority",
    response_model=LeadPriorityResponse,
    summary="Why this lead",
    description="Priority score (0-100) with up to three reasons.",
)
async def get_priority(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await LeadServices.get_priority(db, lead_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_priority: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
