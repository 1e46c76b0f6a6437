import threading
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

from chatcommerce.core.errors import ConcurrencyConflict, StorageError, UpstreamUnavailable
from chatcommerce.schemas.events import InboundEvent
from chatcommerce.services.audit import InMemoryAuditSink
from chatcommerce.services.catalog import CatalogSnapshot, InMemoryCatalogGateway
from chatcommerce.services.checkout import CheckoutOrchestrator
from chatcommerce.services.conversation import ConversationService
from chatcommerce.services.dedup import InMemoryDeduplicator
from chatcommerce.services.dispatcher import MessageDispatcher
from chatcommerce.services.orders import InMemoryOrderService
from chatcommerce.services.payments import InMemoryPaymentGateway
from chatcommerce.services.session_store import InMemorySessionStore
from chatcommerce.whatsapp.mock_provider import MockWhatsAppProvider

CUSTOMER = "35699000001"

CATALOG_SEED = {
    "vendors": [
        {"id": "7", "name": "Bridge Bar", "description": "Cocktails and bites on Republic Street."},
        {"id": "8", "name": "Trabuxu Bistro", "description": "Wine bar in Valletta."},
    ],
    "menu_items": [
        {"id": "701", "vendor_id": "7", "name": "Aperol Spritz", "price": "9.00",
         "category": "Cocktails", "popular": True},
        {"id": "702", "vendor_id": "7", "name": "Pastizzi", "price": "4.50",
         "category": "Bites", "popular": True, "description": "Ricotta and pea pastries."},
        {"id": "703", "vendor_id": "7", "name": "Ftira", "price": "8.00",
         "category": "Bites", "description": "Maltese bread with tuna and capers."},
        {"id": "704", "vendor_id": "7", "name": "Kinnie", "price": "2.50",
         "category": "Drinks", "available": False},
        {"id": "801", "vendor_id": "8", "name": "Rabbit Stew", "price": "18.00", "category": "Mains"},
    ],
}


def make_catalog() -> InMemoryCatalogGateway:
    return InMemoryCatalogGateway.from_seed(CATALOG_SEED)


def make_snapshot() -> CatalogSnapshot:
    return CatalogSnapshot(make_catalog())


class FailingOrderService:
    def __init__(self):
        self.calls = 0

    def create_order(self, request):
        self.calls += 1
        raise UpstreamUnavailable("orders", "timed out")


class FailingCatalog:
    def list_active_vendors(self):
        raise UpstreamUnavailable("catalog", "connection refused")

    def list_menu_items(self, vendor_id):
        raise UpstreamUnavailable("catalog", "connection refused")


class AlwaysConflictingStore(InMemorySessionStore):
    def __init__(self):
        super().__init__()
        self.save_calls = 0

    def save(self, session, expected_version):
        self.save_calls += 1
        raise ConcurrencyConflict(session.customer_id, expected_version)


class BrokenStore(InMemorySessionStore):
    def load(self, customer_id):
        raise StorageError("database is locked")


class InterleavingStore(InMemorySessionStore):
    """Segura os primeiros `parties` loads numa barreira depois de `arm`."""

    def __init__(self):
        super().__init__()
        self._armed_loads = 0
        self._parties = 0
        self._barrier = None
        self._count_lock = threading.Lock()

    def arm(self, parties):
        self._parties = parties
        self._armed_loads = 0
        self._barrier = threading.Barrier(parties)

    def load(self, customer_id):
        session = super().load(customer_id)
        with self._count_lock:
            self._armed_loads += 1
            should_wait = self._barrier is not None and self._armed_loads <= self._parties
        if should_wait:
            self._barrier.wait(timeout=5)
        return session


def build_service(
    *, store=None, orders=None, payments=None, catalog=None, provider=None, max_attempts=3, clock=None
):
    ctx = SimpleNamespace(
        store=store or InMemorySessionStore(),
        dedup=InMemoryDeduplicator(),
        orders=orders or InMemoryOrderService(),
        payments=payments or InMemoryPaymentGateway(),
        catalog=catalog or make_catalog(),
        provider=provider or MockWhatsAppProvider(),
        audit=InMemoryAuditSink(),
    )
    ctx.service = ConversationService(
        store=ctx.store,
        dedup=ctx.dedup,
        catalog=ctx.catalog,
        checkout=CheckoutOrchestrator(ctx.orders, ctx.payments),
        dispatcher=MessageDispatcher(ctx.provider, ctx.audit),
        max_attempts=max_attempts,
        clock=clock or (lambda: datetime.now(timezone.utc)),
    )
    return ctx


def event(text="", *, customer_id=CUSTOMER, selection_id=None, delivery_id=None):
    return InboundEvent(
        customer_id=customer_id,
        text=text,
        selection_id=selection_id,
        delivery_id=delivery_id or f"wamid.{uuid.uuid4().hex}",
    )


def send(ctx, text="", **kwargs):
    return ctx.service.handle_event(event(text, **kwargs))
