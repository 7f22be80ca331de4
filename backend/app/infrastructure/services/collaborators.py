"""
Collaborator Services

Thin interfaces over data owned by neighbouring services: identity and the
asset catalog. Only the lookups the entitlement logic depends on live here.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.collaborators import Asset, User
from app.infrastructure.db.repositories.collaborator_repositories import (
    AssetRepository,
    UserRepository,
)
from app.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)


class IdentityService:
    """User lookups and guarded deletion."""

    def __init__(self, session: AsyncSession):
        self._repo = UserRepository(session)

    async def get_user(self, user_id: int) -> User:
        user = await self._repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", operation="get_user", table="users")
        return user

    async def get_active_user(self, user_id: int) -> User:
        user = await self.get_user(user_id)
        if not user.is_active:
            raise NotFoundError(
                f"User {user_id} is not active",
                operation="get_active_user",
                table="users",
            )
        return user

    async def delete_user(self, user_id: int) -> None:
        """Remove an identity record. Callers check entitlements first."""
        if not await self._repo.delete(user_id):
            raise NotFoundError(f"User {user_id} not found", operation="delete_user", table="users")
        logger.info(f"[IDENTITY] Deleted user {user_id}")


class AssetCatalog:
    """Asset existence checks."""

    def __init__(self, session: AsyncSession):
        self._repo = AssetRepository(session)

    async def get_active_asset(self, asset_id: int) -> Asset:
        asset = await self._repo.get_by_id(asset_id)
        if asset is None or not asset.is_active:
            raise NotFoundError(
                f"Asset {asset_id} not found",
                operation="get_active_asset",
                table="assets",
            )
        return asset
