from __future__ import annotations

from chatcommerce.core.config import BRAND_NAME, CURRENCY_SYMBOL, ESTIMATED_PICKUP_MINUTES
from chatcommerce.fsm.messages import ChoiceMessage, ChoiceOption, OutboundMessage, TextMessage
from chatcommerce.fsm.session import CartLine, ConversationSession
from chatcommerce.services.cart import cart_total
from chatcommerce.services.catalog import MenuItem, Vendor
from chatcommerce.services.menu_search import LISTING_LIMIT, list_categories
from chatcommerce.services.payments import PAYMENT_METHOD_NAMES, PAYMENT_METHODS

GREETING_VENDOR_LIMIT = 3
DESCRIPTION_PREVIEW = 50

HELP_TEXT = (
    f"🤖 *{BRAND_NAME} Assistant Help*\n\n"
    "I can help you:\n\n"
    "🍽️ Browse restaurant menus\n"
    "🛒 Add items to cart\n"
    "💳 Place orders\n"
    "📞 Get recommendations\n\n"
    "*Commands:*\n"
    "• \"start\" - Begin ordering\n"
    "• \"menu\" - Browse items\n"
    "• \"cart\" - View current order\n"
    "• \"help\" - Show this help"
)

ORDERING_HELP_TEXT = (
    "I can help you add items to your cart! Try:\n\n"
    "• Type a number to select an item\n"
    "• Ask for \"recommendations\"\n"
    "• Type \"menu\" to see all items\n"
    "• Type \"cart\" to review your order"
)

CART_HELP_TEXT = (
    "I can help you with your cart! Try:\n"
    "• \"checkout\" - Place your order\n"
    "• \"add\" - Add more items\n"
    "• \"remove [number]\" - Remove item\n"
    "• \"cart\" - See current order"
)

TRANSIENT_ERROR_TEXT = (
    "I'm having trouble processing your request right now. "
    "Please try again in a moment, or type 'help' for assistance."
)

UPSTREAM_ERROR_TEXT = (
    "⚠️ Our ordering service is temporarily unavailable. "
    "Nothing was lost, please send your last message again in a moment."
)


def format_price_cents(price_cents: int) -> str:
    return f"{CURRENCY_SYMBOL}{price_cents / 100:,.2f}"


def short_order_code(order_id: str) -> str:
    return order_id.replace("-", "")[:8].upper()


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def help_messages() -> list[OutboundMessage]:
    return [TextMessage(HELP_TEXT)]


def no_vendors() -> list[OutboundMessage]:
    return [TextMessage("😔 No restaurants are taking orders right now. Please try again a bit later.")]


def greeting(session: ConversationSession, vendors: list[Vendor]) -> list[OutboundMessage]:
    preferred = session.preferences.preferred_vendor_id
    ordered = sorted(vendors, key=lambda vendor: vendor.id != preferred) if preferred else list(vendors)
    name = session.preferences.name
    hello = f"Welcome back, {name}! " if name else ""

    return [
        TextMessage(
            f"🇲🇹 {hello}Welcome to {BRAND_NAME}! I'm your dining assistant.\n\n"
            "I can help you:\n🍽️ Find restaurants\n📱 Browse menus\n🛒 Place orders\n💬 Get recommendations\n\n"
            "Let's start by finding you a great place to eat!"
        ),
        ChoiceMessage(
            prompt="Choose a restaurant to browse their menu:",
            options=tuple(
                ChoiceOption(id=f"vendor_{vendor.id}", label=vendor.name)
                for vendor in ordered[:GREETING_VENDOR_LIMIT]
            ),
        ),
    ]


def vendor_not_found(vendors: list[Vendor]) -> list[OutboundMessage]:
    listing = "\n".join(f"{idx}. {vendor.name}" for idx, vendor in enumerate(vendors, start=1))
    return [
        TextMessage(
            "I couldn't find that restaurant. Here are our available options:\n\n"
            f"{listing}\n\nPlease choose by typing the restaurant name or number."
        )
    ]


def menu_listing(items: list[MenuItem], title: str = "") -> str:
    header = f"🍽️ *Menu Items*{f' ({title})' if title else ''}:\n\n"
    lines: list[str] = []
    for idx, item in enumerate(items[:LISTING_LIMIT], start=1):
        lines.append(f"{idx}. *{item.name}* - {format_price_cents(item.price_cents)}")
        if item.description:
            lines.append(f"   {_truncate(item.description, DESCRIPTION_PREVIEW)}")
    return header + "\n".join(lines)


def listing_messages(items: list[MenuItem], title: str = "") -> list[OutboundMessage]:
    return [
        TextMessage(
            f"{menu_listing(items, title)}\n\n"
            "💬 Reply with the item number to add it to your cart, or ask me for recommendations!\n\n"
            "Type \"cart\" to view your current order."
        )
    ]


def vendor_selected(vendor: Vendor, items: list[MenuItem]) -> list[OutboundMessage]:
    intro = (
        f"🍽️ Great choice! You've selected *{vendor.name}*\n\n"
        f"{vendor.description or 'Delicious food awaits!'}"
    )
    if not items:
        return [TextMessage(f"{intro}\n\nTheir menu is being updated, type something to search or \"start\" to pick another place.")]

    messages: list[OutboundMessage] = [
        TextMessage(
            f"{intro}\n\n{menu_listing(items)}\n\n"
            "💬 Reply with an item number to add it to your cart, search for a dish, or pick a category."
        )
    ]
    categories = list_categories(items)
    if categories:
        messages.append(
            ChoiceMessage(
                prompt="Browse by category:",
                options=tuple(
                    ChoiceOption(id=f"category_{category}", label=category)
                    for category in categories[:LISTING_LIMIT]
                ),
            )
        )
    return messages


def cart_cleared_for_vendor(vendor: Vendor) -> TextMessage:
    return TextMessage(f"🛒 Your previous cart was cleared, orders are placed with one restaurant at a time ({vendor.name}).")


def no_recommendations() -> list[OutboundMessage]:
    return [TextMessage("No recommendations right now. Type \"menu\" to see all items.")]


def no_items_found(query: str) -> list[OutboundMessage]:
    return [
        TextMessage(
            f"No items found matching \"{query}\". "
            "Try searching for something else or type \"menu\" to see all items."
        )
    ]


def item_added(item: MenuItem, quantity_in_cart: int) -> list[OutboundMessage]:
    return [
        TextMessage(
            f"✅ Added *{item.name}* to your cart! (x{quantity_in_cart})\n\n"
            "Reply with another number to add more, \"cart\" to review your order "
            "or \"checkout\" when you're ready."
        )
    ]


def recommendations(items: list[MenuItem]) -> list[OutboundMessage]:
    lines = ["⭐ *Popular Recommendations:*", ""]
    for idx, item in enumerate(items, start=1):
        lines.append(f"{idx}. *{item.name}* - {format_price_cents(item.price_cents)}")
        if item.description:
            lines.append(f"   {item.description}")
    lines.append("")
    lines.append("Reply with the number to add to cart!")
    return [TextMessage("\n".join(lines))]


def cart_lines_text(cart: list[CartLine]) -> str:
    return "\n".join(
        f"{idx}. {line.name} x{line.quantity} - {format_price_cents(line.line_total_cents)}"
        for idx, line in enumerate(cart, start=1)
    )


def cart_summary(session: ConversationSession) -> list[OutboundMessage]:
    if not session.cart:
        return [TextMessage("🛒 Your cart is empty.\n\nType \"menu\" to browse items or ask me for recommendations!")]
    return [
        TextMessage(
            "🛒 *Your Order:*\n\n"
            f"{cart_lines_text(session.cart)}\n\n"
            f"💰 *Total: {format_price_cents(cart_total(session.cart))}*\n\n"
            "Ready to order? Type:\n"
            "• \"checkout\" to place order\n"
            "• \"add\" to add more items\n"
            "• \"remove [number]\" to remove item"
        )
    ]


def item_removed(line: CartLine) -> list[OutboundMessage]:
    return [
        TextMessage(
            f"✅ Removed one *{line.name}* from your cart.\n\n"
            "Type \"cart\" to see updated order or \"checkout\" when ready."
        )
    ]


def remove_invalid(position: int | None) -> list[OutboundMessage]:
    which = f"item {position}" if position is not None else "that item"
    return [TextMessage(f"I couldn't find {which} in your cart. Type \"cart\" to see the numbered list.")]


def ask_name() -> list[OutboundMessage]:
    return [TextMessage("📝 To complete your order, I'll need your name.\n\nWhat name should I put for this order?")]


def payment_options(session: ConversationSession, vendor: Vendor) -> list[OutboundMessage]:
    return [
        TextMessage(
            "💳 *Payment & Pickup*\n\n"
            f"📍 *{vendor.name}*\n"
            f"💰 *Total: {format_price_cents(cart_total(session.cart))}*\n\n"
            "Payment options:"
        ),
        payment_choice(),
    ]


def payment_choice() -> ChoiceMessage:
    return ChoiceMessage(
        prompt="How would you like to pay?",
        options=tuple(ChoiceOption(id=f"pay_{method}", label=label) for method, label in PAYMENT_METHODS.items()),
    )


def empty_cart_checkout() -> list[OutboundMessage]:
    return [TextMessage("🛒 Your cart is empty, add something first! Type \"menu\" to browse items.")]


def order_confirmed(
    order_id: str,
    customer_name: str,
    payment_method: str,
    pay_url: str | None,
    reference: str | None,
) -> list[OutboundMessage]:
    parts = [
        "✅ *Order Confirmed!*",
        "",
        f"🆔 Order #{short_order_code(order_id)}",
        f"👤 Name: {customer_name}",
        f"💳 Payment: {PAYMENT_METHOD_NAMES.get(payment_method, payment_method)}",
        f"⏱️ Estimated time: {ESTIMATED_PICKUP_MINUTES} minutes",
    ]
    if pay_url:
        parts.extend(["", "Please complete payment here:", pay_url])
    elif reference:
        parts.extend(["", f"Payment reference: {reference}"])
    parts.extend(
        [
            "",
            "📞 The restaurant will contact you when ready for pickup.",
            "",
            f"Thank you for using {BRAND_NAME}! Type \"new\" to place another order.",
        ]
    )
    return [TextMessage("\n".join(parts))]


def checkout_failed() -> list[OutboundMessage]:
    return [
        TextMessage(
            "❌ Sorry, we couldn't place your order right now. Your cart is saved, "
            "please choose a payment option again to retry."
        ),
        payment_choice(),
    ]


def choose_payment_again() -> list[OutboundMessage]:
    return [TextMessage("Please select a payment method for your order."), payment_choice()]


def order_status() -> list[OutboundMessage]:
    return [
        TextMessage(
            "📋 Your recent order is being prepared. You'll be contacted when it's ready for pickup.\n\n"
            "Type \"new\" to start another order."
        )
    ]


def confirmation_ack() -> list[OutboundMessage]:
    return [TextMessage("Thank you! If you need to place another order, just type \"new\" or \"start\". 😊")]


def new_order_started() -> list[OutboundMessage]:
    return [TextMessage("🆕 Let's start a new order! Send any message to see our restaurants.")]


def add_more_prompt() -> list[OutboundMessage]:
    return [TextMessage("What else would you like to add? Type an item name or \"menu\" to see all options.")]
