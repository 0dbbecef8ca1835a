"""Persisted WSAA tickets, one file per environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from src.modules.afip.constants import WSAA_SERVICE_NAME
from src.modules.afip.schemas import AuthTicket

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    def load(self, environment: str) -> AuthTicket | None: ...

    def save(self, environment: str, ticket: AuthTicket) -> None: ...


class FileCredentialStore:
    """Stores ``ta_wsfe_{environment}.json`` under ``work_dir``.

    Unreadable or corrupt files are reported as absent so the caller falls
    through to a fresh login instead of failing.
    """

    def __init__(self, work_dir: str | Path) -> None:
        self.work_dir = Path(work_dir)

    def path_for(self, environment: str) -> Path:
        return self.work_dir / f"ta_{WSAA_SERVICE_NAME}_{environment}.json"

    def load(self, environment: str) -> AuthTicket | None:
        path = self.path_for(environment)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            logger.warning("Cannot read persisted ticket %s", path, exc_info=True)
            return None

        try:
            return AuthTicket.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring corrupt persisted ticket %s", path)
            return None

    def save(self, environment: str, ticket: AuthTicket) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(environment)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(ticket.model_dump_json(by_alias=True), encoding="utf-8")
        os.replace(tmp_path, path)
        logger.info("Persisted %s ticket valid until %s", environment, ticket.expiration_time)


class MemoryCredentialStore:
    """Process-local store for tests and stateless deployments."""

    def __init__(self) -> None:
        self._tickets: dict[str, AuthTicket] = {}

    def load(self, environment: str) -> AuthTicket | None:
        return self._tickets.get(environment)

    def save(self, environment: str, ticket: AuthTicket) -> None:
        self._tickets[environment] = ticket
