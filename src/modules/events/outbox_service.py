"""OutboxService — domain events written in the same transaction as the state change.

Rows are staged PENDING; delivery is owned by whatever relay reads the
``event_outbox`` table.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox

logger = logging.getLogger(__name__)


class OutboxService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
    ) -> EventOutbox:
        """Stage a PENDING event; it becomes visible when the caller commits."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            retry_count=0,
        )
        self.session.add(event)
        await self.session.flush()
        logger.debug("Staged %s for %s/%s", event_type, aggregate_type, aggregate_id)
        return event
