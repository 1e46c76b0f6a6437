from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.whatsapp.base import safe_json, sanitize_payload

logger = logging.getLogger(__name__)

DIRECTION_IN = "in"
DIRECTION_OUT = "out"


@dataclass
class AuditEntry:
    customer_id: str
    direction: str
    body: str
    vendor_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message_type: str = "text"
    payload: dict[str, Any] = field(default_factory=dict)
    status: str = "sent"
    error: str | None = None
    provider_message_id: str | None = None


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None:
        ...


class SqlAlchemyAuditSink:
    """Grava no whatsapp_message_log; falha de auditoria nunca derruba a conversa."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, entry: AuditEntry) -> None:
        log_entry = WhatsAppMessageLog(
            customer_id=entry.customer_id,
            vendor_id=entry.vendor_id,
            direction=entry.direction,
            message_type=entry.message_type,
            body=entry.body,
            payload_json=safe_json(sanitize_payload(entry.payload)),
            status=entry.status,
            error=entry.error,
            provider_message_id=entry.provider_message_id,
            created_at=entry.timestamp,
        )
        try:
            self.db.add(log_entry)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("failed to write message log direction=%s", entry.direction)


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []
        self._lock = Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def for_customer(self, customer_id: str, direction: str | None = None) -> list[AuditEntry]:
        with self._lock:
            return [
                entry
                for entry in self.entries
                if entry.customer_id == customer_id and (direction is None or entry.direction == direction)
            ]
