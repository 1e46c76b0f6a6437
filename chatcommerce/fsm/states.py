GREETING = "greeting"
VENDOR_SELECTION = "vendor_selection"
MENU_BROWSING = "menu_browsing"
ORDERING = "ordering"
CART_REVIEW = "cart_review"
CUSTOMER_INFO = "customer_info"
PAYMENT = "payment"
CONFIRMATION = "confirmation"
SUPPORT = "support"

ALL_STEPS = frozenset(
    {
        GREETING,
        VENDOR_SELECTION,
        MENU_BROWSING,
        ORDERING,
        CART_REVIEW,
        CUSTOMER_INFO,
        PAYMENT,
        CONFIRMATION,
        SUPPORT,
    }
)

# passos que só fazem sentido com um vendor selecionado
VENDOR_STEPS = frozenset({MENU_BROWSING, ORDERING})
