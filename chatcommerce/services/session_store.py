from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chatcommerce.core.errors import ConcurrencyConflict, StorageError
from chatcommerce.fsm import states
from chatcommerce.fsm.session import CartLine, ConversationSession, Preferences
from chatcommerce.models.conversation_session import ConversationSessionRecord

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("invalid json column ignored")
        return default


def session_to_values(session: ConversationSession, version: int) -> dict[str, Any]:
    return {
        "vendor_id": session.vendor_id,
        "step": session.step,
        "cart_json": json.dumps([line.to_dict() for line in session.cart], ensure_ascii=False),
        "preferences_json": json.dumps(session.preferences.to_dict(), ensure_ascii=False),
        "order_history_json": json.dumps(list(session.order_history), ensure_ascii=False),
        "browse_filter_json": (
            json.dumps(session.browse_filter, ensure_ascii=False) if session.browse_filter is not None else None
        ),
        "last_activity_at": _as_utc(session.last_activity_at) or datetime.now(timezone.utc),
        "version": version,
    }


def session_from_record(record: ConversationSessionRecord) -> ConversationSession:
    step = record.step if record.step in states.ALL_STEPS else states.SUPPORT
    return ConversationSession(
        customer_id=record.customer_id,
        vendor_id=record.vendor_id,
        cart=[CartLine.from_dict(entry) for entry in _loads(record.cart_json, [])],
        step=step,
        preferences=Preferences.from_dict(_loads(record.preferences_json, {})),
        order_history=[str(order_id) for order_id in _loads(record.order_history_json, [])],
        browse_filter=_loads(record.browse_filter_json, None),
        last_activity_at=_as_utc(record.last_activity_at),
        version=int(record.version or 0),
    )


class SessionStore(ABC):
    """Contrato de persistência das sessões.

    `save` só grava se a versão guardada for igual a `expected_version`
    (0 = sessão nova, insert) e devolve a cópia salva com a versão nova.
    Qualquer divergência vira ConcurrencyConflict.
    """

    @abstractmethod
    def load(self, customer_id: str) -> ConversationSession | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, session: ConversationSession, expected_version: int) -> ConversationSession:
        raise NotImplementedError

    @abstractmethod
    def delete_if_idle(self, customer_id: str, version: int, cutoff: datetime) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_idle(self, cutoff: datetime, limit: int = 500) -> list[tuple[str, int]]:
        raise NotImplementedError

    def invalidate(self, customer_id: str) -> None:
        return None


class SqlAlchemySessionStore(SessionStore):
    def __init__(self, db: Session) -> None:
        self.db = db

    def load(self, customer_id: str) -> ConversationSession | None:
        try:
            record = (
                self.db.query(ConversationSessionRecord)
                .filter(ConversationSessionRecord.customer_id == customer_id)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to load session {customer_id}") from exc
        if record is None:
            return None
        return session_from_record(record)

    def save(self, session: ConversationSession, expected_version: int) -> ConversationSession:
        new_version = expected_version + 1
        values = session_to_values(session, new_version)
        try:
            if expected_version == 0:
                self.db.add(ConversationSessionRecord(customer_id=session.customer_id, **values))
                self.db.flush()
            else:
                updated = (
                    self.db.query(ConversationSessionRecord)
                    .filter(
                        ConversationSessionRecord.customer_id == session.customer_id,
                        ConversationSessionRecord.version == expected_version,
                    )
                    .update(values, synchronize_session=False)
                )
                if updated != 1:
                    self.db.rollback()
                    raise ConcurrencyConflict(session.customer_id, expected_version)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrencyConflict(session.customer_id, expected_version) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to save session {session.customer_id}") from exc

        saved = session.clone()
        saved.version = new_version
        saved.last_activity_at = values["last_activity_at"]
        return saved

    def delete_if_idle(self, customer_id: str, version: int, cutoff: datetime) -> bool:
        try:
            deleted = (
                self.db.query(ConversationSessionRecord)
                .filter(
                    ConversationSessionRecord.customer_id == customer_id,
                    ConversationSessionRecord.version == version,
                    ConversationSessionRecord.last_activity_at < _as_utc(cutoff),
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to delete session {customer_id}") from exc
        return deleted == 1

    def list_idle(self, cutoff: datetime, limit: int = 500) -> list[tuple[str, int]]:
        rows = (
            self.db.query(ConversationSessionRecord.customer_id, ConversationSessionRecord.version)
            .filter(ConversationSessionRecord.last_activity_at < _as_utc(cutoff))
            .order_by(ConversationSessionRecord.last_activity_at.asc())
            .limit(limit)
            .all()
        )
        return [(customer_id, int(version)) for customer_id, version in rows]


class InMemorySessionStore(SessionStore):
    """Store local para simulador e testes; guarda cópias, nunca referências."""

    def __init__(self) -> None:
        self._rows: dict[str, ConversationSession] = {}
        self._lock = Lock()

    def load(self, customer_id: str) -> ConversationSession | None:
        with self._lock:
            stored = self._rows.get(customer_id)
            return stored.clone() if stored else None

    def save(self, session: ConversationSession, expected_version: int) -> ConversationSession:
        with self._lock:
            stored = self._rows.get(session.customer_id)
            current_version = stored.version if stored else 0
            if current_version != expected_version:
                raise ConcurrencyConflict(session.customer_id, expected_version)
            saved = session.clone()
            saved.version = expected_version + 1
            saved.last_activity_at = _as_utc(saved.last_activity_at) or datetime.now(timezone.utc)
            self._rows[session.customer_id] = saved
            return saved.clone()

    def delete_if_idle(self, customer_id: str, version: int, cutoff: datetime) -> bool:
        with self._lock:
            stored = self._rows.get(customer_id)
            if stored is None or stored.version != version:
                return False
            if stored.last_activity_at and stored.last_activity_at >= _as_utc(cutoff):
                return False
            del self._rows[customer_id]
            return True

    def list_idle(self, cutoff: datetime, limit: int = 500) -> list[tuple[str, int]]:
        limit_at = _as_utc(cutoff)
        with self._lock:
            idle = [
                session
                for session in self._rows.values()
                if session.last_activity_at is None or session.last_activity_at < limit_at
            ]
        idle.sort(key=lambda session: session.last_activity_at or datetime.min.replace(tzinfo=timezone.utc))
        return [(session.customer_id, session.version) for session in idle[:limit]]


class SessionCache:
    def __init__(self) -> None:
        self._entries: dict[str, ConversationSession] = {}
        self._lock = Lock()

    def get(self, customer_id: str) -> ConversationSession | None:
        with self._lock:
            cached = self._entries.get(customer_id)
            return cached.clone() if cached else None

    def put(self, session: ConversationSession) -> None:
        with self._lock:
            current = self._entries.get(session.customer_id)
            if current is not None and current.version > session.version:
                return
            self._entries[session.customer_id] = session.clone()

    def evict(self, customer_id: str) -> None:
        with self._lock:
            self._entries.pop(customer_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_process_cache = SessionCache()


def get_process_cache() -> SessionCache:
    return _process_cache


class CachedSessionStore(SessionStore):
    """Cache-aside na frente do store durável.

    Leitura tenta o cache primeiro; escrita vai ao store durável e só depois
    atualiza o cache. Um conflito remove a entrada, então a próxima tentativa
    relê do store durável.
    """

    def __init__(self, inner: SessionStore, cache: SessionCache | None = None) -> None:
        self.inner = inner
        self.cache = cache or _process_cache

    def load(self, customer_id: str) -> ConversationSession | None:
        cached = self.cache.get(customer_id)
        if cached is not None:
            return cached
        loaded = self.inner.load(customer_id)
        if loaded is not None:
            self.cache.put(loaded)
        return loaded

    def save(self, session: ConversationSession, expected_version: int) -> ConversationSession:
        try:
            saved = self.inner.save(session, expected_version)
        except ConcurrencyConflict:
            self.cache.evict(session.customer_id)
            raise
        self.cache.put(saved)
        return saved

    def delete_if_idle(self, customer_id: str, version: int, cutoff: datetime) -> bool:
        deleted = self.inner.delete_if_idle(customer_id, version, cutoff)
        self.cache.evict(customer_id)
        return deleted

    def list_idle(self, cutoff: datetime, limit: int = 500) -> list[tuple[str, int]]:
        return self.inner.list_idle(cutoff, limit)

    def invalidate(self, customer_id: str) -> None:
        self.cache.evict(customer_id)
        self.inner.invalidate(customer_id)
