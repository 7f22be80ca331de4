"""
Collaborator Tables

Minimal views of data owned by neighbouring services: identity (users),
the asset catalog and the activity feed. Only the columns this service
reads or writes are mapped.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel

from app.domain.subscription import UserRole, utcnow
from app.infrastructure.db.models.base import BaseModel


class User(BaseModel, table=True):
    """Identity record."""

    __tablename__ = "users"

    email: str = Field(..., max_length=255, unique=True, index=True)
    name: Optional[str] = Field(default=None, max_length=100)
    role: str = Field(default=UserRole.USER.value, max_length=20)
    is_active: bool = Field(default=True)


class Asset(BaseModel, table=True):
    """Downloadable asset in the catalog."""

    __tablename__ = "assets"

    name: str = Field(..., max_length=255)
    is_active: bool = Field(default=True, index=True)


class Activity(SQLModel, table=True):
    """Activity feed entry."""

    __tablename__ = "activities"

    id: Optional[int] = Field(default=None, primary_key=True)
    type: str = Field(..., max_length=50, index=True)
    message: str = Field(..., max_length=500)
    user_id: Optional[int] = Field(default=None, index=True)
    asset_id: Optional[int] = Field(default=None)
    event_data: Optional[dict] = Field(
        default=None,
        sa_column=Column(JSON),
        description="Additional structured data (plan name, download count, ...)"
    )
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
