from __future__ import annotations

import difflib
import re
import unicodedata
from typing import Any, Iterable

from chatcommerce.services.catalog import MenuItem, Vendor

LISTING_LIMIT = 10
RECOMMENDATION_LIMIT = 3
MIN_SEARCH_LENGTH = 3
_FUZZY_CUTOFF = 0.8


def normalize(text: str) -> str:
    text = (text or "").lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[-_]", " ", text)
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def list_categories(items: Iterable[MenuItem]) -> list[str]:
    seen: list[str] = []
    for item in items:
        category = (item.category or "").strip()
        if category and category not in seen:
            seen.append(category)
    return seen


def filter_menu_items(items: list[MenuItem], browse_filter: dict[str, Any] | None) -> list[MenuItem]:
    """Reconstrói a listagem numerada a partir do filtro salvo na sessão."""
    if not browse_filter:
        return items[:LISTING_LIMIT]

    if browse_filter.get("popular"):
        return [item for item in items if item.popular][:RECOMMENDATION_LIMIT]

    category = browse_filter.get("category")
    if category:
        wanted = normalize(str(category))
        return [item for item in items if normalize(item.category or "") == wanted][:LISTING_LIMIT]

    query = normalize(str(browse_filter.get("query") or ""))
    if not query:
        return items[:LISTING_LIMIT]
    matches = [
        item
        for item in items
        if query in normalize(item.name) or query in normalize(item.description or "")
    ]
    return matches[:LISTING_LIMIT]


def resolve_listing_number(
    items: list[MenuItem], browse_filter: dict[str, Any] | None, number: int
) -> MenuItem | None:
    listing = filter_menu_items(items, browse_filter)
    if number < 1 or number > len(listing):
        return None
    return listing[number - 1]


def match_vendor(vendors: list[Vendor], text: str) -> Vendor | None:
    query = normalize(text)
    if not query:
        return None

    for vendor in vendors:
        name = normalize(vendor.name)
        if name == query:
            return vendor

    for vendor in vendors:
        name = normalize(vendor.name)
        if len(query) >= MIN_SEARCH_LENGTH and (query in name or name in query):
            return vendor

    names = {normalize(vendor.name): vendor for vendor in vendors}
    close = difflib.get_close_matches(query, list(names), n=1, cutoff=_FUZZY_CUTOFF)
    if close:
        return names[close[0]]
    return None
