"""
Custom Events API Endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from storelens.database.models import EventKind
from storelens.exceptions import InvalidRecord
from storelens.serving.api.dependencies import get_dashboard, get_session_id, get_user_id
from storelens.serving.api.schemas import EventResponse, TrackEventRequest, TrackEventResponse
from storelens.services import DashboardService

router = APIRouter()


@router.post("", response_model=TrackEventResponse, status_code=status.HTTP_201_CREATED)
async def track_event(
    event: TrackEventRequest,
    session_id: Optional[str] = Depends(get_session_id),
    user_id: Optional[str] = Depends(get_user_id),
    service: DashboardService = Depends(get_dashboard),
) -> TrackEventResponse:
    """
    Record a behavioral event.

    The session comes from the body or the ``X-Session-ID`` header. Unknown
    event types and payloads of the wrong shape are rejected with 422; a
    failed write is reported as ``tracked: false``.
    """
    session = event.session_id or session_id
    if not session:
        raise InvalidRecord("A session id is required (body or X-Session-ID header)")
    tracked = await service.track_event(
        event.event_type,
        session,
        event.user_id or user_id,
        event.data,
    )
    return TrackEventResponse(tracked=tracked)


@router.get("", response_model=List[EventResponse])
async def list_events(
    event_type: Optional[EventKind] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: DashboardService = Depends(get_dashboard),
):
    """Events newest first, optionally of one type."""
    return await service.list_events(event_type, limit=limit, offset=offset)
