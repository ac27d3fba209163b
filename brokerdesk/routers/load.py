from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from brokerdesk.schemas.lead import AgentActionRequest
from brokerdesk.schemas.load import (
    AttributeRequest,
    AttributionResult,
    LoadBookRequest,
    LoadBookResponse,
    LoadCloseCoveredResponse,
    LoadCloseRequest,
    LoadOut,
)
from brokerdesk.db.session import get_db
from brokerdesk.services.booking_attribution import BookingAttributionMatcher
from brokerdesk.services.errors import ResolutionValidationError, TransitionConflict
from brokerdesk.services.load_services import LoadServices
from brokerdesk.services import transitions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/loads", tags=["Loads"])


@router.get("/{load_id}", response_model=LoadOut, summary="Get a load")
async def get_load(load_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await LoadServices.get_load(db, load_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{load_id}/claim", response_model=LoadOut, summary="Claim a load")
async def claim_load(load_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.claim(db, "load", load_id, request.agent_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in claim_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{load_id}/release", response_model=LoadOut, summary="Release a claimed load")
async def release_load(load_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.release(db, "load", load_id, request.agent_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in release_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{load_id}/book",
    response_model=LoadBookResponse,
    summary="Book a load",
    description="open/claimed -> booked, then attribution to the originating lead.",
)
async def book_load(load_id: UUID, request: LoadBookRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await LoadServices.book_load(
            db,
            load_id,
            agent_id=request.agent_id,
            booked_source=request.booked_source,
            call_id=request.call_id,
            lead_id=request.lead_id,
        )
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in book_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{load_id}/close", response_model=LoadOut, summary="Close a load with a reason")
async def close_load(load_id: UUID, request: LoadCloseRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await LoadServices.close_load(db, load_id, request.close_reason, agent_id=request.agent_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in close_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{load_id}/close-covered",
    response_model=LoadCloseCoveredResponse,
    summary="Close a load as covered",
    description="Closes the load and its open leads with reason 'covered'. Booked or closed leads are left as they are.",
)
async def close_covered(load_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await LoadServices.close_covered(db, load_id, agent_id=request.agent_id)
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in close_covered: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/{load_id}/reopen", response_model=LoadOut, summary="Reopen a booked or closed load")
async def reopen_load(load_id: UUID, request: AgentActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await transitions.reopen(db, "load", load_id, request.agent_id)
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in reopen_load: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/{load_id}/attribute",
    response_model=AttributionResult,
    summary="Attribute a booked load to a lead",
    description="Explicit lead if given, else load reference, else carrier MC/DOT from the adjacent call.",
)
async def attribute_booking(load_id: UUID, request: AttributeRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await BookingAttributionMatcher.attribute_booking(db, load_id, lead_id=request.lead_id)
    except ResolutionValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in attribute_booking: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
