"""Comment service — comments on test cases and test runs.

Learn: Comments point at their target polymorphically
(commentable_type + commentable_id) so there is no foreign key to cascade
through. Whoever deletes a case or run also deletes its comments, via
delete_comments_for_cases() / delete_comments_for_runs().
"""

import uuid
from typing import Iterable

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from testcraft.activity import types as audit
from testcraft.activity.recorder import ActivityRecorder
from testcraft.db.models import (
    ActivityAction,
    Comment,
    CommentableType,
    TestRun,
    User,
)
from testcraft.errors import AuthorizationError, NotFoundError
from testcraft.services.access import AccessService


async def delete_comments_for_runs(db: AsyncSession, run_ids: Iterable[int]) -> None:
    ids = [str(i) for i in run_ids]
    if ids:
        await db.execute(
            delete(Comment).where(
                Comment.commentable_type == CommentableType.TEST_RUN,
                Comment.commentable_id.in_(ids),
            )
        )


async def delete_comments_for_cases(db: AsyncSession, case_ids: Iterable[uuid.UUID]) -> None:
    """Delete comments on the given cases and on every run of those cases."""
    case_ids = list(case_ids)
    if not case_ids:
        return
    run_ids = (
        await db.execute(select(TestRun.id).where(TestRun.test_case_id.in_(case_ids)))
    ).scalars().all()
    await db.execute(
        delete(Comment).where(
            or_(
                and_(
                    Comment.commentable_type == CommentableType.TEST_CASE,
                    Comment.commentable_id.in_([str(c) for c in case_ids]),
                ),
                and_(
                    Comment.commentable_type == CommentableType.TEST_RUN,
                    Comment.commentable_id.in_([str(r) for r in run_ids]),
                ),
            )
        )
    )


class CommentService:
    def __init__(self, db: AsyncSession, activity: ActivityRecorder):
        self.db = db
        self.activity = activity
        self.access = AccessService(db)

    async def _target_org(self, commentable_type: CommentableType, commentable_id: str) -> uuid.UUID:
        """Resolve a comment target to its organization (404 if it doesn't exist)."""
        if commentable_type == CommentableType.TEST_CASE:
            try:
                case_id = uuid.UUID(commentable_id)
            except ValueError:
                raise NotFoundError("Test case not found")
            _, org_id = await self.access.test_case_with_org(case_id)
            return org_id

        try:
            run_id = int(commentable_id)
        except ValueError:
            raise NotFoundError("Test run not found")
        _, org_id = await self.access.test_run_with_org(run_id)
        return org_id

    async def add_comment(
        self,
        actor: User,
        content: str,
        commentable_type: CommentableType,
        commentable_id: str,
    ) -> Comment:
        org_id = await self._target_org(commentable_type, commentable_id)
        await self.access.require_membership(actor.id, org_id)

        comment = Comment(
            content=content,
            author_id=actor.id,
            commentable_type=commentable_type,
            commentable_id=commentable_id,
        )
        self.db.add(comment)
        await self.db.commit()

        await self.activity.record(
            actor.id,
            ActivityAction.CREATED,
            audit.COMMENT,
            comment.id,
            {"commentable_type": commentable_type.value, "commentable_id": commentable_id},
        )
        return await self._with_author(comment.id)

    async def _with_author(self, comment_id: int) -> Comment:
        result = await self.db.execute(
            select(Comment)
            .where(Comment.id == comment_id)
            .options(selectinload(Comment.author))
            .execution_options(populate_existing=True)
        )
        return result.scalars().one()

    async def list_comments(
        self, actor: User, commentable_type: CommentableType, commentable_id: str
    ) -> list[Comment]:
        """Comments on one target, newest first."""
        org_id = await self._target_org(commentable_type, commentable_id)
        await self.access.require_membership(actor.id, org_id)
        result = await self.db.execute(
            select(Comment)
            .where(
                Comment.commentable_type == commentable_type,
                Comment.commentable_id == commentable_id,
            )
            .options(selectinload(Comment.author))
            .order_by(Comment.created_at.desc(), Comment.id.desc())
        )
        return list(result.scalars().all())

    async def delete_comment(self, actor: User, comment_id: int) -> None:
        """Only the author or a platform admin may delete a comment."""
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        if comment.author_id != actor.id and not actor.is_admin:
            raise AuthorizationError("You can only delete your own comments")

        await self.db.execute(delete(Comment).where(Comment.id == comment_id))
        await self.db.commit()

        await self.activity.record(actor.id, ActivityAction.DELETED, audit.COMMENT, comment_id)
