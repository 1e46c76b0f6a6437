# chatcommerce/deps.py
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from chatcommerce.core.config import (
    CATALOG_API_URL,
    CATALOG_SEED_PATH,
    META_WA_ACCESS_TOKEN,
    META_WA_PHONE_NUMBER_ID,
    ORDERS_API_URL,
    PAYMENTS_API_URL,
    SESSION_CACHE_ENABLED,
    UPSTREAM_API_TOKEN,
    UPSTREAM_TIMEOUT_SECONDS,
    WHATSAPP_FALLBACK_TO_MOCK,
    WHATSAPP_PROVIDER,
)
from chatcommerce.core.database import get_db
from chatcommerce.services.audit import SqlAlchemyAuditSink
from chatcommerce.services.catalog import CatalogGateway, build_catalog_gateway
from chatcommerce.services.checkout import CheckoutOrchestrator
from chatcommerce.services.conversation import ConversationService
from chatcommerce.services.dedup import SqlAlchemyDeduplicator
from chatcommerce.services.dispatcher import MessageDispatcher
from chatcommerce.services.orders import OrderService, build_order_service
from chatcommerce.services.payments import PaymentGateway, build_payment_gateway
from chatcommerce.services.session_store import CachedSessionStore, SessionStore, SqlAlchemySessionStore
from chatcommerce.whatsapp.base import WhatsAppProvider
from chatcommerce.whatsapp.cloud_provider import CloudWhatsAppProvider
from chatcommerce.whatsapp.mock_provider import MockWhatsAppProvider

logger = logging.getLogger(__name__)


# Gateways e providers são por processo; sessão do banco é por request.
@lru_cache
def get_catalog_gateway() -> CatalogGateway:
    return build_catalog_gateway(
        CATALOG_API_URL,
        timeout=UPSTREAM_TIMEOUT_SECONDS,
        token=UPSTREAM_API_TOKEN,
        seed_path=CATALOG_SEED_PATH,
    )


@lru_cache
def get_order_service() -> OrderService:
    return build_order_service(ORDERS_API_URL, timeout=UPSTREAM_TIMEOUT_SECONDS, token=UPSTREAM_API_TOKEN)


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return build_payment_gateway(PAYMENTS_API_URL, timeout=UPSTREAM_TIMEOUT_SECONDS, token=UPSTREAM_API_TOKEN)


@lru_cache
def get_mock_provider() -> MockWhatsAppProvider:
    return MockWhatsAppProvider()


@lru_cache
def get_whatsapp_provider() -> WhatsAppProvider:
    if WHATSAPP_PROVIDER == "cloud":
        if META_WA_ACCESS_TOKEN and META_WA_PHONE_NUMBER_ID:
            return CloudWhatsAppProvider(
                access_token=META_WA_ACCESS_TOKEN,
                phone_number_id=META_WA_PHONE_NUMBER_ID,
            )
        logger.warning("WHATSAPP_PROVIDER=cloud without credentials, using mock provider")
    return get_mock_provider()


def get_fallback_provider() -> WhatsAppProvider | None:
    if not WHATSAPP_FALLBACK_TO_MOCK:
        return None
    if isinstance(get_whatsapp_provider(), MockWhatsAppProvider):
        return None
    return get_mock_provider()


def get_session_store(db: Session = Depends(get_db)) -> SessionStore:
    store: SessionStore = SqlAlchemySessionStore(db)
    if SESSION_CACHE_ENABLED:
        store = CachedSessionStore(store)
    return store


def get_conversation_service(
    db: Session = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> ConversationService:
    dispatcher = MessageDispatcher(
        get_whatsapp_provider(),
        SqlAlchemyAuditSink(db),
        fallback_provider=get_fallback_provider(),
    )
    return ConversationService(
        store=store,
        dedup=SqlAlchemyDeduplicator(db),
        catalog=get_catalog_gateway(),
        checkout=CheckoutOrchestrator(get_order_service(), get_payment_gateway()),
        dispatcher=dispatcher,
    )
