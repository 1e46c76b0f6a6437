from __future__ import annotations

import re
from dataclasses import dataclass

from chatcommerce.services.menu_search import normalize

HELP = "help"
RESTART = "restart"
SHOW_CART = "cart"
SHOW_MENU = "menu"

CHECKOUT = "checkout"
ADD_MORE = "add"
RECOMMEND = "recommend"
NEW_ORDER = "new"
ORDER_STATUS = "status"

# ordem de prioridade: help > restart > cart > menu
COMMAND_WORDS = {
    "help": HELP,
    "support": HELP,
    "start": RESTART,
    "hi": RESTART,
    "hello": RESTART,
    "cart": SHOW_CART,
    "my order": SHOW_CART,
    "menu": SHOW_MENU,
}

KEYWORDS = {
    "checkout": CHECKOUT,
    "check out": CHECKOUT,
    "confirm": CHECKOUT,
    "place order": CHECKOUT,
    "add": ADD_MORE,
    "add more": ADD_MORE,
    "more": ADD_MORE,
    "recommend": RECOMMEND,
    "recommendation": RECOMMEND,
    "recommendations": RECOMMEND,
    "popular": RECOMMEND,
    "best": RECOMMEND,
    "new": NEW_ORDER,
    "new order": NEW_ORDER,
    "another": NEW_ORDER,
    "another order": NEW_ORDER,
    "status": ORDER_STATUS,
    "order": ORDER_STATUS,
    "order status": ORDER_STATUS,
}

SELECTION_KINDS = ("vendor", "category", "pay")

_SELECTION_RE = re.compile(r"^(vendor|category|pay)_(.+)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^#?\s*(\d{1,4})$")
_REMOVE_RE = re.compile(r"^remove(?:\s+(?:item\s+)?#?\s*(\d{1,4}))?$")


@dataclass(frozen=True)
class Intent:
    text: str


@dataclass(frozen=True)
class CommandIntent(Intent):
    name: str


@dataclass(frozen=True)
class SelectionIntent(Intent):
    kind: str
    value: str


@dataclass(frozen=True)
class NumberIntent(Intent):
    value: int


@dataclass(frozen=True)
class RemoveIntent(Intent):
    position: int | None


@dataclass(frozen=True)
class KeywordIntent(Intent):
    word: str


@dataclass(frozen=True)
class FreeTextIntent(Intent):
    normalized: str


def _parse_selection(raw: str) -> SelectionIntent | None:
    match = _SELECTION_RE.match(raw.strip())
    if not match:
        return None
    value = match.group(2).strip()
    if not value:
        return None
    return SelectionIntent(text=raw.strip(), kind=match.group(1).lower(), value=value)


def parse_intent(text: str, selection_id: str | None = None) -> Intent:
    """Classifica a mensagem uma única vez, antes de qualquer despacho por passo."""
    raw = (text or "").strip()

    if selection_id:
        selection = _parse_selection(selection_id)
        if selection is not None:
            return selection
        raw = raw or selection_id.strip()

    normalized = normalize(raw)

    command = COMMAND_WORDS.get(normalized)
    if command:
        return CommandIntent(text=raw, name=command)

    selection = _parse_selection(raw)
    if selection is not None:
        return selection

    number = _NUMBER_RE.match(raw)
    if number:
        return NumberIntent(text=raw, value=int(number.group(1)))

    remove = _REMOVE_RE.match(normalized)
    if remove:
        position = int(remove.group(1)) if remove.group(1) else None
        return RemoveIntent(text=raw, position=position)

    keyword = KEYWORDS.get(normalized)
    if keyword:
        return KeywordIntent(text=raw, word=keyword)

    return FreeTextIntent(text=raw, normalized=normalized)
