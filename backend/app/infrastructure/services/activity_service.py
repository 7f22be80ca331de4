"""
Activity Service

Fire-and-forget recording of activity feed entries. Each entry is written
inside a savepoint of the caller's transaction, so a failure here is logged
and rolled back on its own without affecting the operation that emitted it.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import ActivityType, utcnow
from app.infrastructure.db.models.collaborators import Activity
from app.infrastructure.db.repositories.collaborator_repositories import ActivityRepository


logger = logging.getLogger(__name__)


class ActivityService:
    """Writes and reads the activity feed."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._repo = ActivityRepository(session)

    async def log(
        self,
        activity_type: ActivityType,
        message: str,
        user_id: Optional[int] = None,
        asset_id: Optional[int] = None,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an activity; never raises for storage failures."""
        try:
            async with self._session.begin_nested():
                await self._repo.add(
                    Activity(
                        type=activity_type.value,
                        message=message,
                        user_id=user_id,
                        asset_id=asset_id,
                        event_data=event_data,
                        created_at=utcnow(),
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(f"[ACTIVITY] Failed to record {activity_type.value}: {e}")

    async def recent(self, limit: int = 15) -> List[Activity]:
        return await self._repo.get_recent(limit)
