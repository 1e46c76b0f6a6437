from __future__ import annotations

import logging

from chatcommerce.core.errors import InvariantViolation, UpstreamUnavailable
from chatcommerce.fsm import render, states
from chatcommerce.fsm.messages import TransitionResult
from chatcommerce.fsm.session import ConversationSession
from chatcommerce.services.cart import cart_total
from chatcommerce.services.catalog import CatalogSnapshot
from chatcommerce.services.orders import OrderRequest, OrderService, build_order_lines
from chatcommerce.services.payments import PAYMENT_METHODS, PaymentGateway

logger = logging.getLogger(__name__)


class CheckoutOrchestrator:
    """Transforma um carrinho revisado em pedido persistido.

    O carrinho só é limpo depois que o order service confirmou o pedido; em
    qualquer falha upstream a sessão volta exatamente como entrou.
    """

    def __init__(self, orders: OrderService, payments: PaymentGateway) -> None:
        self._orders = orders
        self._payments = payments

    def begin(self, session: ConversationSession, snapshot: CatalogSnapshot) -> TransitionResult:
        updated = session.clone()
        if not updated.cart:
            updated.step = states.CART_REVIEW
            return TransitionResult(updated, render.empty_cart_checkout())
        if not (updated.preferences.name or "").strip():
            updated.step = states.CUSTOMER_INFO
            return TransitionResult(updated, render.ask_name())
        return self.offer_payment(updated, snapshot)

    def offer_payment(self, session: ConversationSession, snapshot: CatalogSnapshot) -> TransitionResult:
        vendor = snapshot.vendor(session.vendor_id)
        if vendor is None:
            raise InvariantViolation(f"checkout for inactive vendor {session.vendor_id!r}")
        updated = session.clone()
        updated.step = states.PAYMENT
        return TransitionResult(updated, render.payment_options(updated, vendor))

    def execute(
        self,
        session: ConversationSession,
        method: str,
        *,
        idempotency_key: str,
    ) -> TransitionResult:
        method = (method or "").strip().lower()
        if method not in PAYMENT_METHODS:
            return TransitionResult(session.clone(), render.choose_payment_again())

        customer_name = (session.preferences.name or "").strip()
        if not customer_name:
            updated = session.clone()
            updated.step = states.CUSTOMER_INFO
            return TransitionResult(updated, render.ask_name())

        if not session.cart:
            updated = session.clone()
            updated.step = states.CART_REVIEW
            return TransitionResult(updated, render.empty_cart_checkout())

        if not session.vendor_id:
            raise InvariantViolation("checkout without vendor")

        total_cents = cart_total(session.cart)
        try:
            payment = self._payments.initiate(method, total_cents, idempotency_key=idempotency_key)
            receipt = self._orders.create_order(
                OrderRequest(
                    customer_id=session.customer_id,
                    vendor_id=session.vendor_id,
                    customer_name=customer_name,
                    payment_method=method,
                    lines=build_order_lines(session.cart),
                    total_cents=total_cents,
                    idempotency_key=idempotency_key,
                    payment_reference=payment.reference,
                    dietary_restrictions=tuple(sorted(session.preferences.dietary_restrictions)),
                )
            )
        except UpstreamUnavailable as exc:
            logger.warning(
                "checkout failed, session kept service=%s detail=%s",
                exc.service,
                exc.detail,
                extra={"vendor_id": session.vendor_id},
            )
            return TransitionResult(session.clone(), render.checkout_failed())

        updated = session.clone()
        if receipt.order_id not in updated.order_history:
            updated.order_history.append(receipt.order_id)
        updated.cart = []
        updated.browse_filter = None
        updated.preferences.preferred_vendor_id = updated.vendor_id
        updated.step = states.CONFIRMATION
        logger.info(
            "checkout completed order_id=%s method=%s total_cents=%s",
            receipt.order_id,
            method,
            total_cents,
            extra={"vendor_id": session.vendor_id},
        )
        return TransitionResult(
            updated,
            render.order_confirmed(
                receipt.order_id,
                customer_name,
                method,
                payment.pay_url,
                payment.reference,
            ),
        )
