"""
Processed Webhook Event Repository

Idempotency bookkeeping for provider events.
"""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.processed_event import ProcessedWebhookEvent


class WebhookEventRepository:
    """Records which provider events have already been applied."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_processed(self, event_id: str) -> bool:
        return await self._session.get(ProcessedWebhookEvent, event_id) is not None

    async def mark_processed(self, event_id: str, event_type: str, now: datetime) -> None:
        """
        Insert the marker inside the caller's transaction.

        A concurrent delivery of the same event fails here with an
        IntegrityError on the primary key.
        """
        self._session.add(
            ProcessedWebhookEvent(event_id=event_id, event_type=event_type, processed_at=now)
        )
        await self._session.flush()
