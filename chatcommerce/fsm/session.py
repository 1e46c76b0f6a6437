from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from chatcommerce.fsm import states


@dataclass
class CartLine:
    menu_item_id: str
    name: str
    unit_price_cents: int
    quantity: int = 1
    special_request: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "special_request": self.special_request,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            menu_item_id=str(data["menu_item_id"]),
            name=str(data.get("name", "") or ""),
            unit_price_cents=int(data.get("unit_price_cents", 0) or 0),
            quantity=max(1, int(data.get("quantity", 1) or 1)),
            special_request=data.get("special_request") or None,
        )


@dataclass
class Preferences:
    name: str | None = None
    dietary_restrictions: set[str] = field(default_factory=set)
    preferred_vendor_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "dietary_restrictions": sorted(self.dietary_restrictions),
            "preferred_vendor_id": self.preferred_vendor_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Preferences":
        data = data or {}
        return cls(
            name=data.get("name") or None,
            dietary_restrictions=set(data.get("dietary_restrictions") or []),
            preferred_vendor_id=data.get("preferred_vendor_id") or None,
        )


@dataclass
class ConversationSession:
    """Estado persistido da conversa de um cliente.

    `version` é 0 enquanto a sessão nunca foi salva; cada save bem-sucedido
    incrementa em 1. `browse_filter` guarda apenas o filtro da última
    listagem mostrada, nunca os itens.
    """

    customer_id: str
    vendor_id: str | None = None
    cart: list[CartLine] = field(default_factory=list)
    step: str = states.GREETING
    preferences: Preferences = field(default_factory=Preferences)
    order_history: list[str] = field(default_factory=list)
    browse_filter: dict[str, Any] | None = None
    last_activity_at: datetime | None = None
    version: int = 0

    @classmethod
    def new(cls, customer_id: str, now: datetime | None = None) -> "ConversationSession":
        return cls(customer_id=customer_id, last_activity_at=now or datetime.now(timezone.utc))

    def clone(self) -> "ConversationSession":
        return copy.deepcopy(self)

    def state_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "cart": [line.to_dict() for line in self.cart],
            "step": self.step,
            "preferences": self.preferences.to_dict(),
            "order_history": list(self.order_history),
            "browse_filter": copy.deepcopy(self.browse_filter),
        }

    def same_state_as(self, other: "ConversationSession") -> bool:
        return self.state_dict() == other.state_dict()

    def reset_order(self) -> None:
        self.cart = []
        self.vendor_id = None
        self.browse_filter = None
