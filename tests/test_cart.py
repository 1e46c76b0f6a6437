import pytest

from chatcommerce.core.errors import IndexInvalid
from chatcommerce.services.cart import add_item, cart_quantity, cart_total, remove_at
from chatcommerce.services.catalog import MenuItem

SPRITZ = MenuItem(id="701", vendor_id="7", name="Aperol Spritz", price_cents=900)
PASTIZZI = MenuItem(id="702", vendor_id="7", name="Pastizzi", price_cents=450)


def test_add_same_item_twice_merges_into_one_line():
    cart = add_item([], SPRITZ)
    cart = add_item(cart, SPRITZ)

    assert len(cart) == 1
    assert cart[0].quantity == 2
    assert cart_quantity(cart, "701") == 2


def test_add_keeps_first_captured_price():
    cart = add_item([], SPRITZ)
    repriced = MenuItem(id="701", vendor_id="7", name="Aperol Spritz", price_cents=1200)

    cart = add_item(cart, repriced, qty=2)

    assert cart[0].unit_price_cents == 900
    assert cart_total(cart) == 2700


def test_add_does_not_mutate_input_cart():
    original = add_item([], SPRITZ)

    add_item(original, SPRITZ)
    add_item(original, PASTIZZI)

    assert len(original) == 1
    assert original[0].quantity == 1


def test_add_rejects_non_positive_quantity():
    with pytest.raises(ValueError):
        add_item([], SPRITZ, qty=0)


def test_total_is_sum_of_price_times_quantity():
    cart = add_item([], SPRITZ, qty=2)
    cart = add_item(cart, PASTIZZI, qty=3)

    assert cart_total(cart) == 900 * 2 + 450 * 3
    assert cart_total([]) == 0


def test_remove_decrements_and_drops_line_at_zero():
    cart = add_item([], SPRITZ, qty=2)
    cart = add_item(cart, PASTIZZI)

    cart, removed = remove_at(cart, 0)
    assert removed.name == "Aperol Spritz"
    assert cart[0].quantity == 1

    cart, _ = remove_at(cart, 1)
    assert [line.menu_item_id for line in cart] == ["701"]


@pytest.mark.parametrize("index", [-1, 1, 5])
def test_remove_out_of_range_raises_index_invalid(index):
    cart = add_item([], SPRITZ)

    with pytest.raises(IndexInvalid) as exc_info:
        remove_at(cart, index)

    assert exc_info.value.size == 1
