"""
Download Repository

Extends BaseRepository with consumption counting and reporting queries.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.models.download import Download


class DownloadRepository(BaseRepository[Download, Download, Download]):
    """Repository for download records."""

    def __init__(self, session: AsyncSession):
        super().__init__(Download, session)

    async def count_in_window(
        self,
        user_id: int,
        start: datetime,
        end: datetime
    ) -> int:
        """Downloads by a user with downloaded_at in [start, end)."""
        stmt = select(func.count(Download.id)).where(
            Download.user_id == user_id,
            Download.downloaded_at >= start,
            Download.downloaded_at < end,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def count_for_asset(self, asset_id: int) -> int:
        stmt = select(func.count(Download.id)).where(Download.asset_id == asset_id)
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def count_for_user(self, user_id: int) -> int:
        stmt = select(func.count(Download.id)).where(Download.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list_page(
        self,
        skip: int,
        limit: int,
        user_id: Optional[int] = None
    ) -> List[Download]:
        """Downloads newest first, optionally for one user."""
        stmt = select(Download)
        if user_id is not None:
            stmt = stmt.where(Download.user_id == user_id)
        stmt = (
            stmt.order_by(Download.downloaded_at.desc(), Download.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def timestamps_since(self, since: datetime) -> List[datetime]:
        """downloaded_at values at or after ``since``; bucketed by the caller."""
        stmt = select(Download.downloaded_at).where(Download.downloaded_at >= since)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def top_assets(self, limit: int) -> List[Tuple[int, int]]:
        """(asset_id, download count) pairs, most downloaded first."""
        downloads = func.count(Download.id).label("downloads")
        stmt = (
            select(Download.asset_id, downloads)
            .group_by(Download.asset_id)
            .order_by(downloads.desc(), Download.asset_id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

