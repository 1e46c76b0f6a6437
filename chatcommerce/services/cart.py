from __future__ import annotations

from chatcommerce.core.errors import IndexInvalid
from chatcommerce.fsm.session import CartLine
from chatcommerce.services.catalog import MenuItem


def add_item(cart: list[CartLine], item: MenuItem, qty: int = 1) -> list[CartLine]:
    """Soma na linha existente do mesmo item; o preço fica o da primeira adição."""
    if qty < 1:
        raise ValueError("quantity must be at least 1")

    updated: list[CartLine] = []
    merged = False
    for line in cart:
        if line.menu_item_id == item.id:
            updated.append(
                CartLine(
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    unit_price_cents=line.unit_price_cents,
                    quantity=line.quantity + qty,
                    special_request=line.special_request,
                )
            )
            merged = True
        else:
            updated.append(line)

    if not merged:
        updated.append(
            CartLine(
                menu_item_id=item.id,
                name=item.name,
                unit_price_cents=item.price_cents,
                quantity=qty,
            )
        )
    return updated


def remove_at(cart: list[CartLine], index: int) -> tuple[list[CartLine], CartLine]:
    """Tira uma unidade da linha `index`; a linha some quando chega a zero.

    Retorna o carrinho novo e a linha afetada (com a quantidade anterior).
    """
    if index < 0 or index >= len(cart):
        raise IndexInvalid(index, len(cart))

    target = cart[index]
    updated: list[CartLine] = []
    for position, line in enumerate(cart):
        if position != index:
            updated.append(line)
        elif line.quantity > 1:
            updated.append(
                CartLine(
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    unit_price_cents=line.unit_price_cents,
                    quantity=line.quantity - 1,
                    special_request=line.special_request,
                )
            )
    return updated, target


def cart_total(cart: list[CartLine]) -> int:
    return sum(line.unit_price_cents * line.quantity for line in cart)


def cart_quantity(cart: list[CartLine], menu_item_id: str) -> int:
    return next((line.quantity for line in cart if line.menu_item_id == menu_item_id), 0)
