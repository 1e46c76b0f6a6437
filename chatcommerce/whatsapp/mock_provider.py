from __future__ import annotations

import logging
import uuid
from threading import Lock
from typing import Any, Iterable

from chatcommerce.whatsapp.base import WhatsAppSendResult

logger = logging.getLogger(__name__)


class MockWhatsAppProvider:
    """Não sai da máquina: guarda o que seria enviado em `sent`."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self._lock = Lock()

    def send_text(self, *, to_phone: str, text: str) -> WhatsAppSendResult:
        payload = {
            "type": "text",
            "to": to_phone,
            "text": text,
        }
        return self._record("text", payload)

    def send_interactive(self, *, to_phone: str, payload: dict[str, Any]) -> WhatsAppSendResult:
        payload = {
            "type": "interactive",
            "to": to_phone,
            "interactive": payload,
        }
        return self._record("interactive", payload)

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        message = payload.get("message") or {}
        if not message:
            return []
        return [
            {
                "message_id": message.get("id") or f"mock-{uuid.uuid4().hex[:8]}",
                "from_number": message.get("from"),
                "text": message.get("text", ""),
                "selection_id": message.get("selection_id"),
                "message_type": message.get("type", "text"),
                "contact_name": message.get("contact_name"),
            }
        ]

    def messages_to(self, to_phone: str) -> list[dict[str, Any]]:
        with self._lock:
            return [entry for entry in self.sent if entry.get("to") == to_phone]

    def _record(self, message_type: str, payload: dict[str, Any]) -> WhatsAppSendResult:
        with self._lock:
            self.sent.append(payload)
        logger.debug("mock whatsapp send type=%s", message_type)
        return WhatsAppSendResult(
            status="sent",
            message_type=message_type,
            payload=payload,
            provider_message_id=f"mock-{uuid.uuid4().hex[:10]}",
        )
