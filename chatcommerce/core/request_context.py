from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_CUSTOMER_ID_CTX: ContextVar[str | None] = ContextVar("customer_id", default=None)
_DELIVERY_ID_CTX: ContextVar[str | None] = ContextVar("delivery_id", default=None)


def set_request_context(
    *, request_id: str | None = None, customer_id: str | None = None, delivery_id: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if customer_id is not None:
        _CUSTOMER_ID_CTX.set(customer_id)
    if delivery_id is not None:
        _DELIVERY_ID_CTX.set(delivery_id)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_customer_id() -> str | None:
    return _CUSTOMER_ID_CTX.get()


def get_delivery_id() -> str | None:
    return _DELIVERY_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _CUSTOMER_ID_CTX.set(None)
    _DELIVERY_ID_CTX.set(None)
