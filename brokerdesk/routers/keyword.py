from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging
import traceback

from brokerdesk.schemas.keyword import (
    KeywordAnalyticsItem,
    KeywordCreateRequest,
    KeywordOut,
    KeywordQuotaStatus,
    KeywordScoreRequest,
    KeywordScoreResponse,
    KeywordSuggestionOut,
    SuggestionActionRequest,
)
from brokerdesk.db.session import get_db
from brokerdesk.services.errors import KeywordPermissionDenied, KeywordQuotaExceeded, TransitionConflict
from brokerdesk.services.keyword_scoring import KEYWORD_INTENT_SCORE, KeywordScoringEngine
from brokerdesk.services.keyword_services import KeywordServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/keywords", tags=["Keywords"])


@router.post(
    "",
    response_model=KeywordOut,
    status_code=201,
    summary="Add a keyword",
    description="Adds a personal (agent) or global (admin only) keyword that expires after 24h. Subject to per-agent, per-agency and daily caps.",
)
async def create_keyword(request: KeywordCreateRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await KeywordServices.create_keyword(
            db,
            request.agent_id,
            request.keyword,
            scope=request.scope,
            keyword_type=request.keyword_type,
            match_type=request.match_type,
            case_sensitive=request.case_sensitive,
            weight=request.weight,
            premium_response=request.premium_response,
        )
    except KeywordQuotaExceeded as e:
        raise HTTPException(status_code=429, detail={"message": str(e), "cap": e.cap, "limit": e.limit, "current": e.current})
    except KeywordPermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in create_keyword: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("", response_model=List[KeywordOut], summary="List active keywords")
async def list_keywords(
    agency_id: UUID,
    agent_id: Optional[UUID] = Query(None, description="Only global keywords plus this agent's own"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await KeywordServices.list_active_keywords(db, agency_id, agent_id)
    except Exception as e:
        logger.error("Error in list_keywords: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/score", response_model=KeywordScoreResponse, summary="Match text against active keywords")
async def score_keywords(request: KeywordScoreRequest, db: AsyncSession = Depends(get_db)):
    try:
        matches = await KeywordScoringEngine.score_keywords(db, request.agency_id, request.text, request.agent_id)
        return KeywordScoreResponse(matches=matches, intent_score_floor=KEYWORD_INTENT_SCORE if matches else None)
    except Exception as e:
        logger.error("Error in score_keywords: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/quota", response_model=KeywordQuotaStatus, summary="Keyword caps for an agent")
async def get_quota(agent_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await KeywordServices.quota_status(db, agent_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in get_quota: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/analytics", response_model=List[KeywordAnalyticsItem], summary="Keyword match and booking counts")
async def keyword_analytics(
    agency_id: UUID,
    days: int = Query(7, ge=1, le=90),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await KeywordServices.keyword_analytics(db, agency_id, days)
    except Exception as e:
        logger.error("Error in keyword_analytics: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.get("/suggestions", response_model=List[KeywordSuggestionOut], summary="Pending keyword suggestions")
async def list_suggestions(
    agency_id: UUID,
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await KeywordServices.list_suggestions(db, agency_id, limit)
    except Exception as e:
        logger.error("Error in list_suggestions: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post(
    "/suggestions/from-load/{load_id}",
    response_model=List[KeywordSuggestionOut],
    summary="Suggest keywords from a booked load",
)
async def generate_suggestions(load_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await KeywordServices.generate_suggestions(db, load_id)
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in generate_suggestions: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/suggestions/{suggestion_id}/accept", response_model=KeywordOut, summary="Accept a suggestion")
async def accept_suggestion(suggestion_id: UUID, request: SuggestionActionRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await KeywordServices.accept_suggestion(db, suggestion_id, request.agent_id)
    except KeywordQuotaExceeded as e:
        raise HTTPException(status_code=429, detail={"message": str(e), "cap": e.cap, "limit": e.limit, "current": e.current})
    except KeywordPermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in accept_suggestion: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/suggestions/{suggestion_id}/dismiss", status_code=204, summary="Dismiss a suggestion")
async def dismiss_suggestion(suggestion_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await KeywordServices.dismiss_suggestion(db, suggestion_id)
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in dismiss_suggestion: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.delete("/{keyword_id}", status_code=204, summary="Delete a keyword")
async def delete_keyword(keyword_id: UUID, agent_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await KeywordServices.delete_keyword(db, keyword_id, agent_id)
    except KeywordPermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("Error in delete_keyword: %s\n%s", e, traceback.format_exc())
        raise HTTPException(status_code=500, detail="Internal Server Error")
