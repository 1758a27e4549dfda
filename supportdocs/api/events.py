"""Recent terminal job events, for clients that poll instead of subscribing."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..schemas.events import NotificationEventResponse
from ..services import notifications

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("", response_model=List[NotificationEventResponse])
def recent_events(
    project_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return notifications.get_recent(db, limit=limit, project_id=project_id)
