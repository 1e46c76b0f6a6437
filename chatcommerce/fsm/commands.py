from __future__ import annotations

import logging
from dataclasses import dataclass, field

from chatcommerce.fsm import render, states
from chatcommerce.fsm.intents import HELP, RESTART, SHOW_CART, SHOW_MENU, CommandIntent, Intent
from chatcommerce.fsm.messages import OutboundMessage
from chatcommerce.fsm.session import ConversationSession
from chatcommerce.services.catalog import CatalogSnapshot
from chatcommerce.services.menu_search import filter_menu_items

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Resposta de um comando global.

    `handoff` pede ao engine que continue pelo ramo de saudação com a
    sessão já ajustada.
    """

    session: ConversationSession
    messages: list[OutboundMessage] = field(default_factory=list)
    handoff: bool = False


def route_command(
    session: ConversationSession,
    intent: Intent,
    snapshot: CatalogSnapshot,
) -> CommandResult | None:
    if not isinstance(intent, CommandIntent):
        return None

    updated = session.clone()
    logger.info("global command name=%s", intent.name, extra={"step": session.step})

    if intent.name == HELP:
        return CommandResult(updated, render.help_messages())

    if intent.name == RESTART:
        updated.step = states.GREETING
        updated.browse_filter = None
        return CommandResult(updated, handoff=True)

    if intent.name == SHOW_CART:
        updated.step = states.CART_REVIEW
        return CommandResult(updated, render.cart_summary(updated))

    if intent.name == SHOW_MENU:
        vendor = snapshot.vendor(updated.vendor_id)
        if vendor is None:
            updated.step = states.GREETING
            return CommandResult(updated, handoff=True)

        items = snapshot.menu(vendor.id)
        updated.browse_filter = None
        if not items:
            updated.step = states.MENU_BROWSING
            return CommandResult(updated, render.vendor_selected(vendor, items))
        updated.step = states.ORDERING
        return CommandResult(updated, render.listing_messages(filter_menu_items(items, None)))

    return None
