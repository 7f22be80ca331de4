"""
Download Record Model

Immutable record of one consumed download. The per-user count inside the
quota window is the day's consumption.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from app.domain.subscription import utcnow


class Download(SQLModel, table=True):
    """Download audit record."""

    __tablename__ = "downloads"
    __table_args__ = (
        Index("ix_downloads_user_id_downloaded_at", "user_id", "downloaded_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: int = Field(
        ...,
        foreign_key="users.id",
        ondelete="CASCADE",
        index=True,
        description="User who consumed the download"
    )
    asset_id: int = Field(
        ...,
        foreign_key="assets.id",
        index=True,
    )
    downloaded_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        index=True,
    )

    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=512)


class DownloadRead(SQLModel):
    id: int
    user_id: int
    asset_id: int
    downloaded_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
