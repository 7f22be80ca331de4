"""
Collaborator Repositories

Data access for users, assets and the activity feed.
"""

from typing import List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.models.collaborators import Activity, Asset, User


class UserRepository(BaseRepository[User, User, User]):
    """Repository for identity records."""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def count_active_by_role(self, role: str) -> int:
        stmt = select(func.count(User.id)).where(User.role == role, User.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one()


class AssetRepository(BaseRepository[Asset, Asset, Asset]):
    """Repository for catalog assets."""

    def __init__(self, session: AsyncSession):
        super().__init__(Asset, session)

    async def count_active(self) -> int:
        stmt = select(func.count(Asset.id)).where(Asset.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def get_names(self, asset_ids: List[int]) -> dict:
        if not asset_ids:
            return {}
        stmt = select(Asset.id, Asset.name).where(Asset.id.in_(asset_ids))
        result = await self._session.execute(stmt)
        return {row[0]: row[1] for row in result.all()}


class ActivityRepository(BaseRepository[Activity, Activity, Activity]):
    """Repository for activity feed entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(Activity, session)

    async def get_recent(self, limit: int = 15) -> List[Activity]:
        stmt = (
            select(Activity)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
