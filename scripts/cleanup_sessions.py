#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from chatcommerce.core.config import SESSION_TTL_HOURS  # noqa: E402
from chatcommerce.core.database import SessionLocal  # noqa: E402
from chatcommerce.core.logging_setup import configure_logging  # noqa: E402
from chatcommerce.services.dedup import SqlAlchemyDeduplicator  # noqa: E402
from chatcommerce.services.session_cleanup import expire_idle_sessions  # noqa: E402
from chatcommerce.services.session_store import SqlAlchemySessionStore  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove conversation sessions idle beyond the TTL.")
    parser.add_argument("--ttl-hours", type=int, default=SESSION_TTL_HOURS, help="Idle hours before expiry")
    parser.add_argument("--batch-size", type=int, default=500, help="Sessions examined per run")
    parser.add_argument(
        "--skip-deliveries",
        action="store_true",
        help="Keep expired processed delivery ids",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.ttl_hours < 1:
        print("--ttl-hours must be at least 1")
        return 1

    configure_logging()
    db = SessionLocal()
    try:
        report = expire_idle_sessions(
            SqlAlchemySessionStore(db),
            ttl_hours=args.ttl_hours,
            batch_size=args.batch_size,
            dedup=None if args.skip_deliveries else SqlAlchemyDeduplicator(db),
        )
    finally:
        db.close()

    print(
        f"Sessions examined={report.examined} deleted={report.deleted} "
        f"skipped={report.skipped} deliveries_purged={report.deliveries_purged}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
