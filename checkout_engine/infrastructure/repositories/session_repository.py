# checkout_engine/infrastructure/repositories/session_repository.py

"""Session repositories.

Every backend stores the same JSON document per session id, so a session
written by one backend reads back identically from another.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from checkout_engine.domain.models import CheckoutSession
from checkout_engine.domain.timer import utc_now
from checkout_engine.infrastructure.db.models import CheckoutSessionRecord
from checkout_engine.infrastructure.db.session import SessionLocal, get_db_session

logger = logging.getLogger(__name__)


class SessionRepository(ABC):
    """Keyed store of checkout sessions."""

    @abstractmethod
    def get(self, session_id: str) -> CheckoutSession | None:
        """Return the session, or None if it does not exist."""
        ...

    @abstractmethod
    def put(self, session: CheckoutSession) -> None:
        """Insert or replace the session under its id."""
        ...

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Remove the session. Returns False if nothing was stored."""
        ...


class InMemorySessionRepository(SessionRepository):

    def __init__(self):
        self._documents: dict[str, dict] = {}

    def get(self, session_id: str) -> CheckoutSession | None:
        document = self._documents.get(session_id)
        return CheckoutSession.from_dict(document) if document else None

    def put(self, session: CheckoutSession) -> None:
        self._documents[session.id] = session.to_dict()

    def delete(self, session_id: str) -> bool:
        return self._documents.pop(session_id, None) is not None


class JsonFileSessionRepository(SessionRepository):
    """
    All sessions in one JSON object keyed by session id,
    the same layout the storefront kept in browser storage.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self, for_write: bool = False) -> dict[str, dict]:
        """
        Reads treat a corrupt file as an empty store. Before a write the
        corrupt file is moved aside so its contents survive for recovery.
        """
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            if not for_write:
                logger.error("Session file %s is corrupt; reading it as empty", self.path)
                return {}
            backup = self.path.with_name(
                f"{self.path.name}.corrupt-{utc_now():%Y%m%dT%H%M%S%f}"
            )
            self.path.replace(backup)
            logger.error("Session file %s is corrupt; moved it to %s", self.path, backup)
            return {}

    def _write_all(self, documents: dict[str, dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(documents, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, session_id: str) -> CheckoutSession | None:
        with self._lock:
            document = self._read_all().get(session_id)
        return CheckoutSession.from_dict(document) if document else None

    def put(self, session: CheckoutSession) -> None:
        with self._lock:
            documents = self._read_all(for_write=True)
            documents[session.id] = session.to_dict()
            self._write_all(documents)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            documents = self._read_all(for_write=True)
            removed = documents.pop(session_id, None) is not None
            if removed:
                self._write_all(documents)
        return removed


class SqlAlchemySessionRepository(SessionRepository):

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, session_id: str) -> CheckoutSession | None:
        with get_db_session(self.session_factory) as db:
            record = db.execute(
                select(CheckoutSessionRecord).where(CheckoutSessionRecord.id == session_id)
            ).scalar_one_or_none()
            if not record:
                return None
            return CheckoutSession.from_dict(json.loads(record.payload))

    def put(self, session: CheckoutSession) -> None:
        payload = json.dumps(session.to_dict(), sort_keys=True)
        with get_db_session(self.session_factory) as db:
            record = db.get(CheckoutSessionRecord, session.id)
            if record is None:
                record = CheckoutSessionRecord(id=session.id, event_id=session.event_id)
                db.add(record)
            record.status = session.status.value
            record.expires_at = session.expires_at
            record.payload = payload

    def delete(self, session_id: str) -> bool:
        with get_db_session(self.session_factory) as db:
            result = db.execute(
                delete(CheckoutSessionRecord).where(CheckoutSessionRecord.id == session_id)
            )
            return result.rowcount > 0


def build_session_repository(kind: str, path: str | Path | None = None) -> SessionRepository:
    if kind == "memory":
        return InMemorySessionRepository()
    if kind == "file":
        return JsonFileSessionRepository(path or "tixmojo_payment_sessions.json")
    if kind == "sql":
        return SqlAlchemySessionRepository(SessionLocal)
    raise ValueError(f"Unknown session store: {kind}")
