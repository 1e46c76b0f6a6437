from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from chatcommerce.core.config import SESSION_TTL_HOURS
from chatcommerce.services.dedup import DeliveryDeduplicator
from chatcommerce.services.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    examined: int = 0
    deleted: int = 0
    skipped: int = 0
    deliveries_purged: int = 0


def expire_idle_sessions(
    store: SessionStore,
    *,
    ttl_hours: int = SESSION_TTL_HOURS,
    now: datetime | None = None,
    batch_size: int = 500,
    dedup: DeliveryDeduplicator | None = None,
) -> CleanupReport:
    """Remove sessões sem atividade há mais de `ttl_hours`.

    O delete é condicionado à versão lida, então uma sessão que recebeu
    mensagem entre a listagem e o delete é mantida.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=ttl_hours)
    report = CleanupReport()

    for customer_id, version in store.list_idle(cutoff, limit=batch_size):
        report.examined += 1
        if store.delete_if_idle(customer_id, version, cutoff):
            report.deleted += 1
        else:
            report.skipped += 1

    if dedup is not None:
        report.deliveries_purged = dedup.purge_expired(now)

    logger.info(
        "session cleanup finished examined=%s deleted=%s skipped=%s deliveries_purged=%s",
        report.examined,
        report.deleted,
        report.skipped,
        report.deliveries_purged,
    )
    return report
