"""
Base Model for SQLModel ORM

Provides common fields and behavior for all database models.
Timestamps are stored as naive UTC.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from app.domain.subscription import utcnow


class TimestampMixin(SQLModel):
    """
    Mixin providing timestamp fields for models.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        description="Record creation timestamp (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": utcnow},
        description="Last update timestamp (UTC)"
    )


class IntIDMixin(SQLModel):
    """
    Mixin providing an autoincrement integer primary key.
    """

    id: Optional[int] = Field(
        default=None,
        primary_key=True,
        description="Unique identifier"
    )


class BaseModel(IntIDMixin, TimestampMixin):
    """
    Base model combining integer id and timestamp mixins.

    Provides: id, created_at, updated_at
    """
    pass
