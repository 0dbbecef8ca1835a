"""In-process ticket cache with a fixed TTL and an injectable clock."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.database.base import utcnow
from src.modules.afip.constants import TICKET_CACHE_TTL
from src.modules.afip.schemas import AuthTicket

Clock = Callable[[], datetime]


@dataclass
class _Entry:
    ticket: AuthTicket
    cached_until: datetime


class TicketCache:
    def __init__(self, ttl: timedelta = TICKET_CACHE_TTL, clock: Clock = utcnow) -> None:
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, _Entry] = {}

    def get(self, environment: str, margin: timedelta) -> AuthTicket | None:
        """Return the cached ticket if both the TTL and the ticket itself are still good."""
        entry = self._entries.get(environment)
        if entry is None:
            return None
        now = self.clock()
        if now >= entry.cached_until or not entry.ticket.is_usable(now, margin):
            del self._entries[environment]
            return None
        return entry.ticket

    def put(self, environment: str, ticket: AuthTicket) -> None:
        self._entries[environment] = _Entry(ticket=ticket, cached_until=self.clock() + self.ttl)
