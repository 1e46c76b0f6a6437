from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from threading import Lock

from sqlalchemy import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chatcommerce.core.config import DEDUP_TTL_SECONDS
from chatcommerce.core.errors import StorageError
from chatcommerce.models.processed_message import ProcessedMessage

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryDeduplicator(ABC):
    """Reserva de delivery ids: só o primeiro `claim` de um id devolve True."""

    def __init__(self, ttl_seconds: int = DEDUP_TTL_SECONDS) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)

    @abstractmethod
    def claim(self, delivery_id: str, customer_id: str | None = None, now: datetime | None = None) -> bool:
        raise NotImplementedError

    @abstractmethod
    def release(self, delivery_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, now: datetime | None = None) -> int:
        raise NotImplementedError


class SqlAlchemyDeduplicator(DeliveryDeduplicator):
    def __init__(self, db: Session, ttl_seconds: int = DEDUP_TTL_SECONDS) -> None:
        super().__init__(ttl_seconds)
        self.db = db

    def claim(self, delivery_id: str, customer_id: str | None = None, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        try:
            self.db.execute(
                insert(ProcessedMessage).values(message_id=delivery_id, customer_id=customer_id, created_at=now)
            )
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to claim delivery {delivery_id}") from exc

        # id já visto: só vale de novo se a reserva anterior expirou
        try:
            refreshed = (
                self.db.query(ProcessedMessage)
                .filter(
                    ProcessedMessage.message_id == delivery_id,
                    ProcessedMessage.created_at < now - self.ttl,
                )
                .update({"created_at": now, "customer_id": customer_id}, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"failed to refresh delivery {delivery_id}") from exc
        return refreshed == 1

    def release(self, delivery_id: str) -> None:
        try:
            self.db.query(ProcessedMessage).filter(ProcessedMessage.message_id == delivery_id).delete(
                synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("failed to release delivery claim delivery_id=%s", delivery_id)

    def purge_expired(self, now: datetime | None = None) -> int:
        cutoff = (now or _utcnow()) - self.ttl
        deleted = (
            self.db.query(ProcessedMessage)
            .filter(ProcessedMessage.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return int(deleted or 0)


class InMemoryDeduplicator(DeliveryDeduplicator):
    def __init__(self, ttl_seconds: int = DEDUP_TTL_SECONDS) -> None:
        super().__init__(ttl_seconds)
        self._claimed: dict[str, datetime] = {}
        self._lock = Lock()

    def claim(self, delivery_id: str, customer_id: str | None = None, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        with self._lock:
            claimed_at = self._claimed.get(delivery_id)
            if claimed_at is not None and claimed_at >= now - self.ttl:
                return False
            self._claimed[delivery_id] = now
            return True

    def release(self, delivery_id: str) -> None:
        with self._lock:
            self._claimed.pop(delivery_id, None)

    def purge_expired(self, now: datetime | None = None) -> int:
        cutoff = (now or _utcnow()) - self.ttl
        with self._lock:
            expired = [key for key, claimed_at in self._claimed.items() if claimed_at < cutoff]
            for key in expired:
                del self._claimed[key]
        return len(expired)
