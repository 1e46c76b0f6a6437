from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Protocol

import httpx

from chatcommerce.core.errors import UpstreamUnavailable
from chatcommerce.fsm.session import CartLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderLine:
    menu_item_id: str
    name: str
    quantity: int
    unit_price_cents: int
    subtotal_cents: int
    special_request: str | None = None


@dataclass(frozen=True)
class OrderRequest:
    customer_id: str
    vendor_id: str
    customer_name: str
    payment_method: str
    lines: tuple[OrderLine, ...]
    total_cents: int
    idempotency_key: str
    payment_reference: str | None = None
    dietary_restrictions: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["lines"] = [asdict(line) for line in self.lines]
        payload["dietary_restrictions"] = list(self.dietary_restrictions)
        return payload


@dataclass(frozen=True)
class OrderReceipt:
    order_id: str


class OrderService(Protocol):
    def create_order(self, request: OrderRequest) -> OrderReceipt:
        ...


def build_order_lines(cart: list[CartLine]) -> tuple[OrderLine, ...]:
    return tuple(
        OrderLine(
            menu_item_id=line.menu_item_id,
            name=line.name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            subtotal_cents=line.unit_price_cents * line.quantity,
            special_request=line.special_request,
        )
        for line in cart
    )


class HttpOrderService:
    INTEGRATION_NAME = "orders"

    def __init__(self, base_url: str, *, timeout: float, token: str = "") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token

    def create_order(self, request: OrderRequest) -> OrderReceipt:
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": request.idempotency_key,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url}/orders", headers=headers, json=request.to_payload())
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("order creation failed error=%s", exc, extra={"integration": self.INTEGRATION_NAME})
            raise UpstreamUnavailable(self.INTEGRATION_NAME, str(exc)) from exc

        order_id = (data or {}).get("order_id") or (data or {}).get("id")
        if not order_id:
            raise UpstreamUnavailable(self.INTEGRATION_NAME, "response without order id")
        return OrderReceipt(order_id=str(order_id))


class InMemoryOrderService:
    """Order service local, idempotente pela chave do pedido."""

    def __init__(self) -> None:
        self.orders: dict[str, OrderRequest] = {}
        self._by_key: dict[str, str] = {}
        self._lock = Lock()

    def create_order(self, request: OrderRequest) -> OrderReceipt:
        with self._lock:
            existing = self._by_key.get(request.idempotency_key)
            if existing:
                logger.info("order replayed for idempotency key order_id=%s", existing)
                return OrderReceipt(order_id=existing)
            order_id = str(uuid.uuid4())
            self.orders[order_id] = request
            self._by_key[request.idempotency_key] = order_id
        logger.info("order created order_id=%s vendor_id=%s", order_id, request.vendor_id)
        return OrderReceipt(order_id=order_id)


def build_order_service(base_url: str, *, timeout: float, token: str = "") -> OrderService:
    if base_url:
        return HttpOrderService(base_url, timeout=timeout, token=token)
    return InMemoryOrderService()
