# Standard library imports
import asyncio
from uuid import UUID, uuid4

# Third-party imports
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

# Local application imports
from app.core.db import get_async_session
from app.core.monitoring.logging import get_contextual_logger
from app.dependancies.common import Principal, get_current_principal, get_issue_engine, require_authority
from app.models.issues.issue import IssueCategory, IssueSeverity, IssueStatus
from app.schemas.issues.event_schemas import StreamCommand
from app.schemas.issues.issue_schemas import (
    IssueCreate,
    IssueListResponse,
    IssueResponse,
    IssueStatusAdvance,
    IssueStatusChangeResponse,
)
from app.services.issues import issue_services
from app.services.issues.engine import IssueEngine
from app.services.issues.geofence import GeoPoint
from app.services.realtime.fanout import FEED, Subscription
from app.settings import settings

logger = get_contextual_logger(__name__)

router = APIRouter(prefix="/issues", tags=["Issues"])

issue_pagination = settings.PAGINATION_CONFIGS["issues"]


@router.post("", response_model=IssueResponse, status_code=status.HTTP_201_CREATED)
async def create_issue(
    issue_data: IssueCreate,
    principal: Principal = Depends(get_current_principal),
    engine: IssueEngine = Depends(get_issue_engine),
    db: AsyncSession = Depends(get_async_session),
):
    """Report a new issue at the reporter's location"""
    return await issue_services.create_issue(db, engine, principal.id, issue_data)


@router.get("", response_model=IssueListResponse)
async def list_issues(
    page: int = Query(1, ge=1),
    per_page: int = Query(
        issue_pagination["default_limit"],
        ge=issue_pagination["min_limit"],
        le=issue_pagination["max_limit"],
    ),
    status: IssueStatus | None = None,
    category: IssueCategory | None = None,
    severity: IssueSeverity | None = None,
    latitude: float | None = Query(None, description="Only issues whose geofence contains this point"),
    longitude: float | None = None,
    engine: IssueEngine = Depends(get_issue_engine),
    db: AsyncSession = Depends(get_async_session),
):
    """List issues with filters"""
    near = GeoPoint(latitude, longitude) if latitude is not None or longitude is not None else None
    return await issue_services.list_issues(
        db,
        page=page,
        per_page=per_page,
        status=status,
        category=category,
        severity=severity,
        near=near,
        max_radius_meters=engine.rules.max_radius_meters,
    )


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(issue_id: UUID, db: AsyncSession = Depends(get_async_session)):
    """Get issue details"""
    return await issue_services.get_issue(db, issue_id)


@router.get("/{issue_id}/history", response_model=list[IssueStatusChangeResponse])
async def get_issue_history(issue_id: UUID, db: AsyncSession = Depends(get_async_session)):
    """Status changes and reposts of an issue, oldest first"""
    return await issue_services.get_issue_history(db, issue_id)


@router.post("/{issue_id}/status", response_model=IssueResponse)
async def advance_issue_status(
    issue_id: UUID,
    body: IssueStatusAdvance,
    principal: Principal = Depends(require_authority),
    engine: IssueEngine = Depends(get_issue_engine),
    db: AsyncSession = Depends(get_async_session),
):
    """Move a verified issue one step along the authority pipeline"""
    return await issue_services.advance_issue_status(db, engine, issue_id, body.status, principal.id)


@router.delete("/{issue_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_issue(
    issue_id: UUID,
    principal: Principal = Depends(require_authority),
    engine: IssueEngine = Depends(get_issue_engine),
    db: AsyncSession = Depends(get_async_session),
):
    """Moderation delete"""
    await issue_services.delete_issue(db, engine, issue_id, principal.id)


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_text(event.model_dump_json())


async def _read_commands(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            command = StreamCommand.model_validate_json(raw)
        except ValidationError:
            await websocket.send_json({"type": "error", "message": "Malformed command"})
            continue

        if command.action == "subscribe":
            for issue_id in command.issue_ids:
                subscription.subscribe(issue_id)
        elif command.action == "unsubscribe":
            for issue_id in command.issue_ids:
                subscription.unsubscribe(issue_id)
        elif command.action == "feed":
            subscription.subscribe(FEED)
        elif command.action == "unfeed":
            subscription.unsubscribe(FEED)
        else:
            await websocket.send_json({"type": "error", "message": f"Unknown action '{command.action}'"})
            continue
        await websocket.send_json({"type": "ack", "action": command.action})


@router.websocket("/stream")
async def issue_stream(
    websocket: WebSocket,
    issue_id: list[UUID] = Query([]),
    feed: bool = False,
):
    """
    Realtime change events.

    Subscribe with ``?issue_id=...`` (repeatable) or ``?feed=true`` for every
    issue, and adjust later by sending ``{"action": "subscribe" | "unsubscribe",
    "issue_ids": [...]}`` or ``{"action": "feed" | "unfeed"}``. The connection's
    subscriptions end when it closes.
    """
    engine: IssueEngine = websocket.app.state.issue_engine
    session_id = uuid4().hex
    log = logger.bind(session_id=session_id)

    await websocket.accept()
    subscription = engine.fanout.subscribe(issue_id, session_id=session_id, feed=feed)
    log.debug(f"Realtime session opened ({len(issue_id)} issues, feed={feed})")

    tasks = [
        asyncio.create_task(_forward_events(websocket, subscription)),
        asyncio.create_task(_read_commands(websocket, subscription)),
    ]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                log.error(f"Realtime session failed: {exc}")
    finally:
        # Released before awaiting so a cancelled handler still frees them
        closed = engine.fanout.close_session(session_id)
        for task in tasks:
            task.cancel()
        log.debug(f"Realtime session closed, {closed} subscriptions released")
        await asyncio.gather(*tasks, return_exceptions=True)
