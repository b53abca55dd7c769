"""Pydantic schemas for comments and the activity feed."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from testcraft.db.models import ActivityAction, CommentableType
from testcraft.schemas.auth import UserBrief


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    commentable_type: CommentableType
    commentable_id: str = Field(..., min_length=1, max_length=64)


class CommentRead(BaseModel):
    id: int
    content: str
    author_id: uuid.UUID
    commentable_type: CommentableType
    commentable_id: str
    created_at: datetime
    author: UserBrief

    model_config = {"from_attributes": True}


class ActivityRead(BaseModel):
    id: int
    user_id: uuid.UUID
    action_type: ActivityAction
    object_type: str
    object_id: str
    changes: Optional[dict] = None
    timestamp: datetime

    model_config = {"from_attributes": True}
