"""Activity feed — read side of the audit log. Users only see their own entries."""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from testcraft.db.models import ActivityLog, User


class ActivityService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_activity(
        self,
        actor: User,
        page: int = 1,
        limit: int = 20,
        object_type: Optional[str] = None,
        object_id: Optional[str] = None,
    ) -> tuple[list[ActivityLog], int]:
        query = select(ActivityLog).where(ActivityLog.user_id == actor.id)
        if object_type:
            query = query.where(ActivityLog.object_type == object_type)
        if object_id:
            query = query.where(ActivityLog.object_id == object_id)

        total = await self.db.scalar(
            select(func.count()).select_from(query.subquery())
        )
        result = await self.db.execute(
            query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
