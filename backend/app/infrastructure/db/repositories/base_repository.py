"""
Base Repository for the Entitlements Service

Generic async repository over integer-keyed tables. Repositories only
flush; the service that owns the transaction decides when to commit or
roll back.
"""

from typing import TypeVar, Generic, Optional, Type

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=SQLModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=SQLModel)


class BaseRepository(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Flush-only CRUD shared by the table repositories.

    Args:
        model: The SQLModel table class to operate on
        session: Async database session shared with the caller
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        return await self._session.get(self._model, id)

    async def create(self, data: CreateSchemaType) -> ModelType:
        """Build a row from a create schema and flush it to obtain its id."""
        db_obj = self._model.model_validate(data)
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def add(self, db_obj: ModelType) -> ModelType:
        """Persist an already-built table instance."""
        self._session.add(db_obj)
        await self._session.flush()
        return db_obj

    async def update(self, id: int, data: UpdateSchemaType) -> Optional[ModelType]:
        """
        Apply only the fields explicitly set on ``data``.

        Returns:
            Updated model instance or None if not found
        """
        db_obj = await self.get_by_id(id)
        if not db_obj:
            return None

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(db_obj, field, value)

        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def delete(self, id: int) -> bool:
        """
        Delete a row by id. Dependent rows follow the table's FK rules.

        Returns:
            True if deleted, False if not found
        """
        db_obj = await self.get_by_id(id)
        if not db_obj:
            return False

        await self._session.delete(db_obj)
        await self._session.flush()
        return True

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self._model)
        result = await self._session.execute(stmt)
        return result.scalar_one()
