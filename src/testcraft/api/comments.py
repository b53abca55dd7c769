"""Comment and activity-feed API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.activity.recorder import ActivityRecorder, get_activity_recorder
from testcraft.auth.dependencies import get_current_user
from testcraft.db.engine import get_db
from testcraft.db.models import User
from testcraft.schemas.comment import ActivityRead, CommentCreate, CommentRead
from testcraft.schemas.common import Deleted, Page
from testcraft.services.activity_service import ActivityService
from testcraft.services.comment_service import CommentService

router = APIRouter()


def _svc(
    db: AsyncSession = Depends(get_db),
    activity: ActivityRecorder = Depends(get_activity_recorder),
) -> CommentService:
    return CommentService(db, activity)


# ─── Comments ───────────────────────────────────────────

@router.post("/comments", response_model=CommentRead, status_code=201)
async def add_comment(
    body: CommentCreate,
    user: User = Depends(get_current_user),
    svc: CommentService = Depends(_svc),
):
    return await svc.add_comment(
        user, body.content, body.commentable_type, body.commentable_id
    )


@router.delete("/comments/{comment_id}", response_model=Deleted)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    svc: CommentService = Depends(_svc),
):
    """Authors can delete their own comments; admins can delete any."""
    await svc.delete_comment(user, comment_id)
    return Deleted()


# ─── Activity ───────────────────────────────────────────

@router.get("/activity", response_model=Page[ActivityRead])
async def list_activity(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    object_type: Optional[str] = Query(None, max_length=50),
    object_id: Optional[str] = Query(None, max_length=64),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own activity, newest first."""
    items, total = await ActivityService(db).list_activity(
        user, page=page, limit=limit, object_type=object_type, object_id=object_id
    )
    return Page[ActivityRead].build(items, total, page, limit)
