from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from chatcommerce.core.errors import IndexInvalid, InvariantViolation
from chatcommerce.fsm import render, states
from chatcommerce.fsm.commands import route_command
from chatcommerce.fsm.intents import (
    ADD_MORE,
    CHECKOUT,
    NEW_ORDER,
    ORDER_STATUS,
    RECOMMEND,
    Intent,
    KeywordIntent,
    NumberIntent,
    RemoveIntent,
    SelectionIntent,
)
from chatcommerce.fsm.messages import OutboundMessage, TextMessage, TransitionResult
from chatcommerce.fsm.session import ConversationSession
from chatcommerce.services.cart import add_item, cart_quantity, remove_at
from chatcommerce.services.catalog import CatalogSnapshot, MenuItem, Vendor
from chatcommerce.services.checkout import CheckoutOrchestrator
from chatcommerce.services.menu_search import (
    filter_menu_items,
    match_vendor,
    normalize,
    resolve_listing_number,
)
from chatcommerce.services.payments import PAYMENT_METHOD_NAMES, PAYMENT_METHODS

logger = logging.getLogger(__name__)

CUSTOMER_NAME_MAX_LENGTH = 60


@dataclass
class Turn:
    """O que um passo precisa além da sessão e da mensagem."""

    snapshot: CatalogSnapshot
    checkout: CheckoutOrchestrator
    idempotency_key: str


def greeting_branch(session: ConversationSession, snapshot: CatalogSnapshot) -> TransitionResult:
    updated = session.clone()
    vendors = snapshot.vendors()
    if not vendors:
        updated.step = states.GREETING
        return TransitionResult(updated, render.no_vendors())
    updated.step = states.VENDOR_SELECTION
    return TransitionResult(updated, render.greeting(updated, vendors))


def handle_intent(
    session: ConversationSession,
    intent: Intent,
    snapshot: CatalogSnapshot,
    checkout: CheckoutOrchestrator,
    *,
    idempotency_key: str,
    now: datetime | None = None,
) -> TransitionResult:
    """Ponto de entrada de um turno: comandos globais antes do passo atual."""
    routed = route_command(session, intent, snapshot)
    if routed is None:
        result = transition(session, intent, snapshot, checkout, idempotency_key=idempotency_key)
    elif routed.handoff:
        greeted = greeting_branch(routed.session, snapshot)
        result = TransitionResult(greeted.session, routed.messages + greeted.messages)
    else:
        result = TransitionResult(routed.session, routed.messages)

    if now is not None:
        result.session.last_activity_at = now
    return result


def transition(
    session: ConversationSession,
    intent: Intent,
    snapshot: CatalogSnapshot,
    checkout: CheckoutOrchestrator,
    *,
    idempotency_key: str,
) -> TransitionResult:
    current = session.clone()
    turn = Turn(snapshot=snapshot, checkout=checkout, idempotency_key=idempotency_key)
    handler = _STEP_HANDLERS.get(current.step, _on_support)
    try:
        return handler(current, intent, turn)
    except InvariantViolation as exc:
        logger.warning("session invariant broken, back to greeting: %s", exc, extra={"step": current.step})
        current.vendor_id = None
        current.browse_filter = None
        return greeting_branch(current, snapshot)


def _active_vendor(session: ConversationSession, snapshot: CatalogSnapshot) -> Vendor:
    vendor = snapshot.vendor(session.vendor_id)
    if vendor is None:
        raise InvariantViolation(f"step {session.step} without an active vendor ({session.vendor_id!r})")
    return vendor


def _select_vendor(session: ConversationSession, vendor: Vendor, snapshot: CatalogSnapshot) -> TransitionResult:
    messages: list[OutboundMessage] = []
    if session.cart and session.vendor_id != vendor.id:
        session.cart = []
        messages.append(render.cart_cleared_for_vendor(vendor))

    session.vendor_id = vendor.id
    session.preferences.preferred_vendor_id = vendor.id
    session.browse_filter = None
    session.step = states.MENU_BROWSING
    messages.extend(render.vendor_selected(vendor, snapshot.menu(vendor.id)))
    logger.info("vendor selected", extra={"vendor_id": vendor.id})
    return TransitionResult(session, messages)


def _show_listing(
    session: ConversationSession,
    items: list[MenuItem],
    browse_filter: dict[str, Any],
    title: str,
) -> TransitionResult:
    matches = filter_menu_items(items, browse_filter)
    if not matches:
        return TransitionResult(session, render.no_items_found(title))
    session.browse_filter = browse_filter
    session.step = states.ORDERING
    return TransitionResult(session, render.listing_messages(matches, title))


def _add_listed_item(session: ConversationSession, item: MenuItem) -> TransitionResult:
    session.cart = add_item(session.cart, item)
    session.step = states.ORDERING
    return TransitionResult(session, render.item_added(item, cart_quantity(session.cart, item.id)))


def _show_recommendations(session: ConversationSession, items: list[MenuItem]) -> TransitionResult:
    browse_filter = {"popular": True}
    popular = filter_menu_items(items, browse_filter)
    if not popular:
        return TransitionResult(session, render.no_recommendations())
    session.browse_filter = browse_filter
    session.step = states.ORDERING
    return TransitionResult(session, render.recommendations(popular))


def _on_greeting(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    return greeting_branch(session, turn.snapshot)


def _on_vendor_selection(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    vendors = turn.snapshot.vendors()
    if not vendors:
        return TransitionResult(session, render.no_vendors())

    vendor: Vendor | None = None
    if isinstance(intent, SelectionIntent):
        if intent.kind == "vendor":
            vendor = turn.snapshot.vendor(intent.value)
    elif isinstance(intent, NumberIntent):
        if 1 <= intent.value <= len(vendors):
            vendor = vendors[intent.value - 1]
    else:
        vendor = match_vendor(vendors, intent.text)

    if vendor is None:
        return TransitionResult(session, render.vendor_not_found(vendors))
    return _select_vendor(session, vendor, turn.snapshot)


def _on_menu_browsing(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    vendor = _active_vendor(session, turn.snapshot)
    items = turn.snapshot.menu(vendor.id)

    if isinstance(intent, SelectionIntent):
        if intent.kind == "category":
            return _show_listing(session, items, {"category": intent.value}, intent.value)
        if intent.kind == "vendor":
            other = turn.snapshot.vendor(intent.value)
            if other is not None:
                return _select_vendor(session, other, turn.snapshot)
        return TransitionResult(session, [TextMessage(render.ORDERING_HELP_TEXT)])

    if isinstance(intent, NumberIntent):
        item = resolve_listing_number(items, session.browse_filter, intent.value)
        if item is None:
            return TransitionResult(session, [TextMessage(render.ORDERING_HELP_TEXT)])
        return _add_listed_item(session, item)

    if isinstance(intent, KeywordIntent) and intent.word == RECOMMEND:
        return _show_recommendations(session, items)

    query = intent.text.strip()
    if not query:
        return TransitionResult(session, render.no_items_found(query))
    return _show_listing(session, items, {"query": query}, query)


def _on_ordering(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    vendor = _active_vendor(session, turn.snapshot)
    items = turn.snapshot.menu(vendor.id)

    if isinstance(intent, NumberIntent):
        item = resolve_listing_number(items, session.browse_filter, intent.value)
        if item is not None:
            return _add_listed_item(session, item)
    elif isinstance(intent, KeywordIntent):
        if intent.word == RECOMMEND:
            return _show_recommendations(session, items)
        if intent.word == CHECKOUT:
            return turn.checkout.begin(session, turn.snapshot)
    elif isinstance(intent, SelectionIntent) and intent.kind == "category":
        return _show_listing(session, items, {"category": intent.value}, intent.value)

    return TransitionResult(session, [TextMessage(render.ORDERING_HELP_TEXT)])


def _on_cart_review(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    if isinstance(intent, KeywordIntent):
        if intent.word == CHECKOUT:
            return turn.checkout.begin(session, turn.snapshot)
        if intent.word == ADD_MORE:
            _active_vendor(session, turn.snapshot)
            session.step = states.MENU_BROWSING
            session.browse_filter = None
            return TransitionResult(session, render.add_more_prompt())

    if isinstance(intent, RemoveIntent):
        if intent.position is None:
            return TransitionResult(session, render.remove_invalid(None))
        try:
            session.cart, removed = remove_at(session.cart, intent.position - 1)
        except IndexInvalid:
            return TransitionResult(session, render.remove_invalid(intent.position))
        return TransitionResult(session, render.item_removed(removed))

    return TransitionResult(session, [TextMessage(render.CART_HELP_TEXT)])


def _on_customer_info(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    name = " ".join(intent.text.split())[:CUSTOMER_NAME_MAX_LENGTH].strip()
    # palavras de comando no prompt do nome não viram nome
    if isinstance(intent, (SelectionIntent, KeywordIntent, RemoveIntent)) or not name:
        return TransitionResult(session, render.ask_name())
    session.preferences.name = name
    return turn.checkout.begin(session, turn.snapshot)


def _payment_method_from_text(text: str) -> str | None:
    wanted = normalize(text)
    for method in PAYMENT_METHODS:
        if wanted in (method, normalize(PAYMENT_METHOD_NAMES[method])):
            return method
    return None


def _on_payment(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    if isinstance(intent, SelectionIntent) and intent.kind == "pay":
        method = intent.value
    else:
        method = _payment_method_from_text(intent.text)

    if not method:
        return TransitionResult(session, render.choose_payment_again())
    return turn.checkout.execute(session, method, idempotency_key=turn.idempotency_key)


def _on_confirmation(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    if isinstance(intent, KeywordIntent):
        if intent.word == NEW_ORDER:
            session.reset_order()
            session.step = states.GREETING
            return TransitionResult(session, render.new_order_started())
        if intent.word == ORDER_STATUS:
            return TransitionResult(session, render.order_status())
    return TransitionResult(session, render.confirmation_ack())


def _on_support(session: ConversationSession, intent: Intent, turn: Turn) -> TransitionResult:
    session.step = states.GREETING
    return TransitionResult(session, render.help_messages())


_STEP_HANDLERS: dict[str, Callable[[ConversationSession, Intent, Turn], TransitionResult]] = {
    states.GREETING: _on_greeting,
    states.VENDOR_SELECTION: _on_vendor_selection,
    states.MENU_BROWSING: _on_menu_browsing,
    states.ORDERING: _on_ordering,
    states.CART_REVIEW: _on_cart_review,
    states.CUSTOMER_INFO: _on_customer_info,
    states.PAYMENT: _on_payment,
    states.CONFIRMATION: _on_confirmation,
    states.SUPPORT: _on_support,
}
