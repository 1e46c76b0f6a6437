from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class InboundEvent(BaseModel):
    customer_id: str = Field(min_length=1, max_length=64)
    text: str = ""
    selection_id: Optional[str] = None
    delivery_id: str = Field(default_factory=lambda: f"sim-{uuid.uuid4().hex}")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    contact_name: Optional[str] = None

    @field_validator("customer_id", "delivery_id")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("identifier must not be blank")
        return value

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_webhook_message(cls, message: dict[str, Any]) -> "InboundEvent":
        try:
            timestamp = datetime.fromtimestamp(int(message.get("timestamp")), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            timestamp = datetime.now(timezone.utc)
        return cls(
            customer_id=message["from_number"],
            text=message.get("text") or "",
            selection_id=message.get("selection_id"),
            delivery_id=message["message_id"],
            timestamp=timestamp,
            contact_name=message.get("contact_name"),
        )


class OutboundMessageOut(BaseModel):
    type: str
    body: Optional[str] = None
    prompt: Optional[str] = None
    options: list[dict[str, Any]] = Field(default_factory=list)


class EventResponse(BaseModel):
    status: str
    step: Optional[str] = None
    attempts: int = 0
    messages: list[OutboundMessageOut] = Field(default_factory=list)
