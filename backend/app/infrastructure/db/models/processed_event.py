"""
Processed Webhook Event Model

One row per provider event whose effects have been committed. Written in
the same transaction as those effects.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from app.domain.subscription import utcnow


class ProcessedWebhookEvent(SQLModel, table=True):
    """Idempotency marker for provider events."""

    __tablename__ = "processed_webhook_events"

    event_id: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100, nullable=False)
    processed_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
