"""Activity recorder — best-effort, append-only audit log.

Learn: Every successful mutation appends one ActivityLog row *after*
its own transaction has committed. The recorder opens a separate session
so a failed audit write can never roll back (or be rolled back with) the
business change, and it never raises: failures go to the structlog
`activity.record_failed` channel and the request carries on.
"""

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from testcraft.db.engine import async_session_factory
from testcraft.db.models import ActivityAction, ActivityLog

logger = structlog.get_logger()


class ActivityRecorder:
    """Append-only activity sink backed by its own sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        user_id: uuid.UUID,
        action_type: ActivityAction,
        object_type: str,
        object_id: Any,
        changes: Optional[dict] = None,
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    ActivityLog(
                        user_id=user_id,
                        action_type=action_type,
                        object_type=object_type,
                        object_id=str(object_id),
                        changes=changes,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "activity.record_failed",
                user_id=str(user_id),
                action_type=action_type.value,
                object_type=object_type,
                object_id=str(object_id),
            )


_default_recorder = ActivityRecorder(async_session_factory)


def get_activity_recorder() -> ActivityRecorder:
    """FastAPI dependency — tests override this to point at their database."""
    return _default_recorder
