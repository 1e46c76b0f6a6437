from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from chatcommerce.core.config import SESSION_SAVE_MAX_ATTEMPTS
from chatcommerce.core.errors import ConcurrencyConflict, StorageError, UpstreamUnavailable
from chatcommerce.core.metrics import InMemoryRequestMetrics, request_metrics
from chatcommerce.core.request_context import set_request_context
from chatcommerce.fsm import render
from chatcommerce.fsm.engine import handle_intent
from chatcommerce.fsm.intents import parse_intent
from chatcommerce.fsm.messages import OutboundMessage, TextMessage
from chatcommerce.fsm.session import ConversationSession
from chatcommerce.schemas.events import InboundEvent
from chatcommerce.services.catalog import CatalogGateway, CatalogSnapshot
from chatcommerce.services.checkout import CheckoutOrchestrator
from chatcommerce.services.dedup import DeliveryDeduplicator
from chatcommerce.services.dispatcher import MessageDispatcher
from chatcommerce.services.session_store import SessionStore

logger = logging.getLogger(__name__)

STATUS_PROCESSED = "processed"
STATUS_DUPLICATE = "duplicate"
STATUS_UPSTREAM_UNAVAILABLE = "upstream_unavailable"
# a entrega pode ser reprocessada: a reserva do delivery id foi liberada
STATUS_RETRY = "retry"


@dataclass
class EventOutcome:
    status: str
    step: str | None = None
    messages: list[OutboundMessage] = field(default_factory=list)
    attempts: int = 0
    vendor_id: str | None = None

    @property
    def should_redeliver(self) -> bool:
        return self.status == STATUS_RETRY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService:
    """Processa um evento de entrada do início ao fim.

    Ordem: reserva do delivery id, load da sessão, log de entrada, comandos
    globais e passo atual, save condicionado à versão (com retry em
    conflito) e, por último, envio das mensagens. Webhook e simulador
    passam pelo mesmo caminho.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        dedup: DeliveryDeduplicator,
        catalog: CatalogGateway,
        checkout: CheckoutOrchestrator,
        dispatcher: MessageDispatcher,
        max_attempts: int = SESSION_SAVE_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
        metrics: InMemoryRequestMetrics = request_metrics,
    ) -> None:
        self.store = store
        self.dedup = dedup
        self.catalog = catalog
        self.checkout = checkout
        self.dispatcher = dispatcher
        self.max_attempts = max(1, max_attempts)
        self.clock = clock
        self.metrics = metrics

    def handle_event(self, event: InboundEvent) -> EventOutcome:
        set_request_context(customer_id=event.customer_id, delivery_id=event.delivery_id)
        logger.info(
            "inbound event text=%r selection_id=%s",
            event.text,
            event.selection_id,
        )

        if not self.dedup.claim(event.delivery_id, event.customer_id):
            logger.info("duplicate delivery ignored")
            self.metrics.increment("events.duplicate")
            return EventOutcome(status=STATUS_DUPLICATE)

        try:
            outcome = self._process(event)
        except StorageError:
            logger.exception("session storage failed, delivery released for redelivery")
            outcome = EventOutcome(status=STATUS_RETRY, messages=[TextMessage(render.TRANSIENT_ERROR_TEXT)])

        if outcome.status == STATUS_RETRY:
            self.dedup.release(event.delivery_id)

        self.metrics.increment(f"events.{outcome.status}")
        self.dispatcher.dispatch(event.customer_id, outcome.messages, vendor_id=outcome.vendor_id)
        return outcome

    def _log_inbound(self, event: InboundEvent, vendor_id: str | None) -> None:
        self.dispatcher.log_inbound(
            event.customer_id,
            event.text,
            delivery_id=event.delivery_id,
            selection_id=event.selection_id,
            vendor_id=vendor_id,
            contact_name=event.contact_name,
            timestamp=event.timestamp,
        )

    def _load_session(self, event: InboundEvent, now: datetime, *, log_inbound: bool) -> ConversationSession:
        """Carrega (ou cria) a sessão; na primeira tentativa grava o log de entrada com o vendor atual."""
        try:
            session = self.store.load(event.customer_id)
        except StorageError:
            if log_inbound:
                self._log_inbound(event, None)
            raise
        if log_inbound:
            self._log_inbound(event, session.vendor_id if session else None)
        return session or ConversationSession.new(event.customer_id, now)

    def _process(self, event: InboundEvent) -> EventOutcome:
        now = self.clock()
        intent = parse_intent(event.text, event.selection_id)
        snapshot = CatalogSnapshot(self.catalog)

        for attempt in range(1, self.max_attempts + 1):
            session = self._load_session(event, now, log_inbound=attempt == 1)
            expected_version = session.version

            try:
                result = handle_intent(
                    session,
                    intent,
                    snapshot,
                    self.checkout,
                    idempotency_key=event.delivery_id,
                    now=now,
                )
            except UpstreamUnavailable as exc:
                logger.warning(
                    "upstream unavailable, session left unchanged service=%s",
                    exc.service,
                    extra={"step": session.step, "integration": exc.service},
                )
                return EventOutcome(
                    status=STATUS_UPSTREAM_UNAVAILABLE,
                    step=session.step,
                    messages=[TextMessage(render.UPSTREAM_ERROR_TEXT)],
                    attempts=attempt,
                    vendor_id=session.vendor_id,
                )

            if session.version == 0 and result.session.same_state_as(session):
                # sessão nova sem mudança (ex.: "help" no primeiro contato): nada a gravar
                return EventOutcome(
                    status=STATUS_PROCESSED,
                    step=session.step,
                    messages=result.messages,
                    attempts=attempt,
                    vendor_id=session.vendor_id,
                )

            # sessão existente grava sempre, mesmo sem mudança de estado: renova
            # last_activity_at e o save condicionado expõe entrada velha do cache
            try:
                saved = self.store.save(result.session, expected_version)
            except ConcurrencyConflict:
                logger.warning(
                    "session version conflict expected=%s",
                    expected_version,
                    extra={"attempt": attempt, "step": session.step},
                )
                self.metrics.increment("sessions.conflicts")
                self.store.invalidate(event.customer_id)
                continue

            logger.info(
                "session saved version=%s",
                saved.version,
                extra={"step": saved.step, "vendor_id": saved.vendor_id, "attempt": attempt},
            )
            return EventOutcome(
                status=STATUS_PROCESSED,
                step=saved.step,
                messages=result.messages,
                attempts=attempt,
                vendor_id=saved.vendor_id,
            )

        logger.error("session conflicts exhausted attempts=%s", self.max_attempts)
        return EventOutcome(
            status=STATUS_RETRY,
            messages=[TextMessage(render.TRANSIENT_ERROR_TEXT)],
            attempts=self.max_attempts,
        )
