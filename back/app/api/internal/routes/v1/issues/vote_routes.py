# Standard library imports
from uuid import UUID

# Third-party imports
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

# Local application imports
from app.core.db import get_async_session
from app.dependancies.common import Principal, get_current_principal, get_issue_engine
from app.schemas.issues.vote_schemas import VoteAcceptedResponse, VoteCreate, VoteResponse
from app.services.issues import issue_services, vote_ledger
from app.services.issues.engine import IssueEngine
from app.services.issues.geofence import GeoPoint
from app.settings import settings

router = APIRouter(prefix="/votes", tags=["Votes"])

vote_pagination = settings.PAGINATION_CONFIGS["votes"]


@router.post("", response_model=VoteAcceptedResponse, status_code=status.HTTP_201_CREATED)
async def cast_vote(
    vote_data: VoteCreate,
    principal: Principal = Depends(get_current_principal),
    engine: IssueEngine = Depends(get_issue_engine),
    db: AsyncSession = Depends(get_async_session),
):
    """Confirm (yes) or dispute (no) an issue from the voter's current location"""
    accepted = await vote_ledger.cast_vote(
        db,
        engine,
        vote_data.issue_id,
        principal.id,
        vote_data.vote,
        GeoPoint(vote_data.latitude, vote_data.longitude),
    )
    return VoteAcceptedResponse(vote=accepted.vote, issue=accepted.issue, became_verified=accepted.became_verified)


@router.get("/issue/{issue_id}", response_model=list[VoteResponse])
async def list_issue_votes(
    issue_id: UUID,
    limit: int = Query(
        vote_pagination["default_limit"],
        ge=vote_pagination["min_limit"],
        le=vote_pagination["max_limit"],
    ),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_async_session),
):
    """Votes cast on an issue, oldest first"""
    # 404 for unknown issues rather than an empty list
    await issue_services.get_issue(db, issue_id)
    return await vote_ledger.list_votes(db, issue_id, limit=limit, offset=offset)
