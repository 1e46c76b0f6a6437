from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

from chatcommerce.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

CASH = "cash"
REVOLUT = "revolut"

# ordem define a ordem dos botões
PAYMENT_METHODS = {
    REVOLUT: "💳 Revolut",
    CASH: "💵 Cash at pickup",
}

PAYMENT_METHOD_NAMES = {
    REVOLUT: "Revolut",
    CASH: "cash at pickup",
}


@dataclass(frozen=True)
class PaymentInitiation:
    method: str
    reference: str | None = None
    pay_url: str | None = None


class PaymentGateway(Protocol):
    def initiate(self, method: str, amount_cents: int, *, idempotency_key: str) -> PaymentInitiation:
        ...


def requires_external_payment(method: str) -> bool:
    return method != CASH


class HttpPaymentGateway:
    INTEGRATION_NAME = "payments"

    def __init__(self, base_url: str, *, timeout: float, token: str = "") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token

    def initiate(self, method: str, amount_cents: int, *, idempotency_key: str) -> PaymentInitiation:
        if not requires_external_payment(method):
            return PaymentInitiation(method=method)

        headers = {"Content-Type": "application/json", "Idempotency-Key": idempotency_key}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/payments",
                    headers=headers,
                    json={"method": method, "amount_cents": amount_cents},
                )
                response.raise_for_status()
                data = response.json() or {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("payment initiation failed method=%s error=%s", method, exc,
                           extra={"integration": self.INTEGRATION_NAME})
            raise UpstreamUnavailable(self.INTEGRATION_NAME, str(exc)) from exc

        return PaymentInitiation(
            method=method,
            reference=data.get("reference"),
            pay_url=data.get("pay_url") or data.get("payUrl"),
        )


class InMemoryPaymentGateway:
    def __init__(self, pay_url_base: str = "https://pay.example.com/r") -> None:
        self.pay_url_base = pay_url_base.rstrip("/")
        self._issued: dict[str, PaymentInitiation] = {}

    def initiate(self, method: str, amount_cents: int, *, idempotency_key: str) -> PaymentInitiation:
        if not requires_external_payment(method):
            return PaymentInitiation(method=method)
        existing = self._issued.get(idempotency_key)
        if existing:
            return existing
        reference = f"{method}-{uuid.uuid4().hex[:10]}"
        initiation = PaymentInitiation(
            method=method,
            reference=reference,
            pay_url=f"{self.pay_url_base}/{reference}?amount_cents={amount_cents}",
        )
        self._issued[idempotency_key] = initiation
        return initiation


def build_payment_gateway(base_url: str, *, timeout: float, token: str = "") -> PaymentGateway:
    if base_url:
        return HttpPaymentGateway(base_url, timeout=timeout, token=token)
    return InMemoryPaymentGateway()
