from __future__ import annotations

import json
import logging
import time
from typing import Any, Iterable

import httpx

from chatcommerce.core.config import META_API_VERSION, UPSTREAM_TIMEOUT_SECONDS
from chatcommerce.services.backoff import InMemoryIntegrationBackoffService
from chatcommerce.whatsapp.base import WhatsAppSendResult

logger = logging.getLogger(__name__)
_backoff_service = InMemoryIntegrationBackoffService()

SUPPORTED_MESSAGE_TYPES = {"text", "interactive", "button"}


def _extract_reply(msg: dict[str, Any]) -> tuple[str, str | None]:
    """Texto e id de seleção de uma mensagem (texto, resposta interativa ou botão)."""
    msg_type = msg.get("type") or "text"
    if msg_type == "text":
        return ((msg.get("text") or {}).get("body")) or "", None

    if msg_type == "interactive":
        interactive = msg.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title") or "", reply.get("id") or None

    if msg_type == "button":
        button = msg.get("button") or {}
        text = button.get("text") or ""
        return text, button.get("payload") or None

    return "", None


def parse_cloud_webhook(payload: dict[str, Any]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            phone_number_id = metadata.get("phone_number_id")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                msg_type = msg.get("type") or "text"
                if msg_type not in SUPPORTED_MESSAGE_TYPES:
                    logger.info("whatsapp message type ignored type=%s", msg_type)
                    continue
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                text, selection_id = _extract_reply(msg)
                messages.append(
                    {
                        "message_id": message_id,
                        "from_number": from_number,
                        "text": text.strip(),
                        "selection_id": selection_id,
                        "message_type": msg_type,
                        "timestamp": msg.get("timestamp"),
                        "phone_number_id": phone_number_id,
                        "contact_name": contact_name,
                    }
                )
    return messages


class CloudWhatsAppProvider:
    MAX_RETRIES = 3
    INTEGRATION_NAME = "whatsapp_cloud"

    def __init__(
        self,
        *,
        access_token: str,
        phone_number_id: str,
        api_version: str = META_API_VERSION,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.timeout = timeout

    def send_text(self, *, to_phone: str, text: str) -> WhatsAppSendResult:
        payload = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        return self._send(message_type="text", payload=payload)

    def send_interactive(self, *, to_phone: str, payload: dict[str, Any]) -> WhatsAppSendResult:
        body = {
            "messaging_product": "whatsapp",
            "to": to_phone,
            "type": "interactive",
            "interactive": payload,
        }
        return self._send(message_type="interactive", payload=body)

    def parse_webhook(self, payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
        return parse_cloud_webhook(payload)

    def _register_failure(self) -> None:
        failures = _backoff_service.register_failure(integration=self.INTEGRATION_NAME)
        if failures == _backoff_service.threshold:
            logger.warning(
                "integration failure threshold reached",
                extra={"integration": self.INTEGRATION_NAME, "consecutive_failures": failures},
            )

    def _send(self, *, message_type: str, payload: dict[str, Any]) -> WhatsAppSendResult:
        if not self.access_token or not self.phone_number_id:
            return WhatsAppSendResult(
                status="failed",
                message_type=message_type,
                payload=payload,
                error="WhatsApp Cloud credentials are incomplete",
            )

        url = f"https://graph.facebook.com/{self.api_version}/{self.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}

        last_error: str | None = None

        for attempt in range(1, self.MAX_RETRIES + 1):
            decision = _backoff_service.before_request(integration=self.INTEGRATION_NAME)
            if decision.delay_seconds > 0:
                logger.warning(
                    "integration backoff activated",
                    extra={
                        "integration": self.INTEGRATION_NAME,
                        "delay_seconds": decision.delay_seconds,
                        "consecutive_failures": decision.consecutive_failures,
                    },
                )
                time.sleep(decision.delay_seconds)

            try:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, headers=headers, json=payload)
            except httpx.HTTPError as exc:
                last_error = str(exc)
                self._register_failure()
            else:
                body_text = response.text
                if 200 <= response.status_code < 300:
                    _backoff_service.register_success(integration=self.INTEGRATION_NAME)
                    provider_id = None
                    try:
                        data = response.json()
                        provider_id = (data.get("messages") or [{}])[0].get("id")
                    except json.JSONDecodeError:
                        data = {"raw": body_text}
                    return WhatsAppSendResult(
                        status="sent",
                        message_type=message_type,
                        payload=payload,
                        provider_message_id=provider_id,
                        response_payload=data,
                    )

                last_error = f"WhatsApp error {response.status_code}: {body_text}"
                self._register_failure()

            logger.warning(
                "whatsapp send attempt failed error=%s",
                last_error,
                extra={"integration": self.INTEGRATION_NAME, "attempt": attempt},
            )
            if attempt >= self.MAX_RETRIES:
                break

        return WhatsAppSendResult(status="failed", message_type=message_type, payload=payload, error=last_error)
