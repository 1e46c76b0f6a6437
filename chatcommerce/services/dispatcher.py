from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from chatcommerce.fsm.messages import ChoiceMessage, OutboundMessage, TextMessage, message_body
from chatcommerce.services.audit import DIRECTION_IN, DIRECTION_OUT, AuditEntry, AuditSink
from chatcommerce.whatsapp.base import WhatsAppProvider, WhatsAppSendResult

logger = logging.getLogger(__name__)

MAX_BUTTONS = 3
MAX_LIST_ROWS = 10
BUTTON_TITLE_LIMIT = 20
ROW_TITLE_LIMIT = 24
ROW_DESCRIPTION_LIMIT = 72
TEXT_BODY_LIMIT = 4096
LIST_BUTTON_LABEL = "Choose"


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def render_text(message: TextMessage) -> dict[str, Any]:
    return {"type": "text", "body": _clip(message.body, TEXT_BODY_LIMIT)}


def render_choice(message: ChoiceMessage) -> dict[str, Any]:
    """Payload `interactive` da Cloud API: botões até 3 opções, lista acima disso."""
    body = {"text": _clip(message.prompt, TEXT_BODY_LIMIT)}
    if len(message.options) <= MAX_BUTTONS:
        return {
            "type": "button",
            "body": body,
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": option.id, "title": _clip(option.label, BUTTON_TITLE_LIMIT)}}
                    for option in message.options
                ]
            },
        }

    rows = []
    for option in message.options[:MAX_LIST_ROWS]:
        row = {"id": option.id, "title": _clip(option.label, ROW_TITLE_LIMIT)}
        if option.description:
            row["description"] = _clip(option.description, ROW_DESCRIPTION_LIMIT)
        rows.append(row)
    return {
        "type": "list",
        "body": body,
        "action": {"button": LIST_BUTTON_LABEL, "sections": [{"title": "Options", "rows": rows}]},
    }


class MessageDispatcher:
    def __init__(
        self,
        provider: WhatsAppProvider,
        audit: AuditSink,
        fallback_provider: WhatsAppProvider | None = None,
    ) -> None:
        self.provider = provider
        self.audit = audit
        self.fallback_provider = fallback_provider

    def _send_with(self, provider: WhatsAppProvider, to_phone: str, message: OutboundMessage) -> WhatsAppSendResult:
        if isinstance(message, ChoiceMessage) and message.options:
            return provider.send_interactive(to_phone=to_phone, payload=render_choice(message))
        text = message.body if isinstance(message, TextMessage) else message.prompt
        return provider.send_text(to_phone=to_phone, text=_clip(text, TEXT_BODY_LIMIT))

    def _send(self, to_phone: str, message: OutboundMessage) -> WhatsAppSendResult:
        message_type = "interactive" if isinstance(message, ChoiceMessage) and message.options else "text"
        try:
            result = self._send_with(self.provider, to_phone, message)
        except Exception as exc:
            logger.exception("whatsapp provider raised while sending")
            result = WhatsAppSendResult(status="failed", message_type=message_type, error=str(exc))

        if result.failed and self.fallback_provider is not None:
            logger.warning("whatsapp send failed, using fallback provider error=%s", result.error)
            result = self._send_with(self.fallback_provider, to_phone, message)
        return result

    def dispatch(
        self,
        customer_id: str,
        messages: list[OutboundMessage],
        *,
        vendor_id: str | None = None,
    ) -> list[WhatsAppSendResult]:
        results: list[WhatsAppSendResult] = []
        for message in messages:
            result = self._send(customer_id, message)
            if result.failed:
                logger.error(
                    "whatsapp send failed error=%s",
                    result.error,
                    extra={"vendor_id": vendor_id, "integration": "whatsapp"},
                )
            self.audit.append(
                AuditEntry(
                    customer_id=customer_id,
                    direction=DIRECTION_OUT,
                    body=message_body(message),
                    vendor_id=vendor_id,
                    message_type=result.message_type,
                    payload=result.payload,
                    status=result.status,
                    error=result.error,
                    provider_message_id=result.provider_message_id,
                )
            )
            results.append(result)
        return results

    def log_inbound(
        self,
        customer_id: str,
        text: str,
        *,
        delivery_id: str,
        selection_id: str | None = None,
        vendor_id: str | None = None,
        contact_name: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        entry = AuditEntry(
            customer_id=customer_id,
            direction=DIRECTION_IN,
            body=text,
            vendor_id=vendor_id,
            message_type="interactive" if selection_id else "text",
            payload={"text": text, "selection_id": selection_id, "contact_name": contact_name},
            status="received",
            provider_message_id=delivery_id,
        )
        if timestamp is not None:
            entry.timestamp = timestamp
        self.audit.append(entry)
