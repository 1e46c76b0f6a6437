import pytest

from chatcommerce.fsm.intents import (
    CHECKOUT,
    HELP,
    NEW_ORDER,
    RECOMMEND,
    RESTART,
    SHOW_CART,
    SHOW_MENU,
    CommandIntent,
    FreeTextIntent,
    KeywordIntent,
    NumberIntent,
    RemoveIntent,
    SelectionIntent,
    parse_intent,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("help", HELP),
        ("  SUPPORT ", HELP),
        ("Hi", RESTART),
        ("hello!", RESTART),
        ("start", RESTART),
        ("cart", SHOW_CART),
        ("My order", SHOW_CART),
        ("menu", SHOW_MENU),
    ],
)
def test_global_commands_are_recognized(text, expected):
    intent = parse_intent(text)

    assert isinstance(intent, CommandIntent)
    assert intent.name == expected


def test_selection_id_wins_over_text():
    intent = parse_intent("Bridge Bar", selection_id="vendor_7")

    assert intent == SelectionIntent(text="vendor_7", kind="vendor", value="7")


def test_typed_selection_keeps_value_case():
    intent = parse_intent("category_Hot Drinks")

    assert isinstance(intent, SelectionIntent)
    assert intent.kind == "category"
    assert intent.value == "Hot Drinks"


def test_numbers_and_remove():
    assert parse_intent(" 2 ") == NumberIntent(text="2", value=2)
    assert parse_intent("#3").value == 3
    assert parse_intent("remove 2") == RemoveIntent(text="remove 2", position=2)
    assert parse_intent("Remove item #4").position == 4
    assert parse_intent("remove").position is None


@pytest.mark.parametrize(
    "text,word",
    [("checkout", CHECKOUT), ("Check-out", CHECKOUT), ("popular", RECOMMEND), ("another", NEW_ORDER)],
)
def test_keywords(text, word):
    intent = parse_intent(text)

    assert isinstance(intent, KeywordIntent)
    assert intent.word == word


def test_free_text_is_normalized():
    intent = parse_intent("  Açaí   Bowl ")

    assert isinstance(intent, FreeTextIntent)
    assert intent.normalized == "acai bowl"
    assert intent.text == "Açaí   Bowl"
