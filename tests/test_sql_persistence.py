from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import chatcommerce.models  # noqa: F401
from chatcommerce.core.database import Base
from chatcommerce.core.errors import ConcurrencyConflict
from chatcommerce.fsm import states
from chatcommerce.fsm.session import CartLine, ConversationSession
from chatcommerce.services.dedup import SqlAlchemyDeduplicator
from chatcommerce.services.session_cleanup import expire_idle_sessions
from chatcommerce.services.session_store import CachedSessionStore, SessionCache, SqlAlchemySessionStore
from tests.fakes import CUSTOMER

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False)
    yield factory
    engine.dispose()


def _session(**kwargs):
    session = ConversationSession.new(CUSTOMER, NOW)
    session.step = states.ORDERING
    session.vendor_id = "7"
    session.cart = [CartLine(menu_item_id="702", name="Pastizzi", unit_price_cents=450, quantity=2)]
    session.preferences.name = "Jane"
    session.preferences.dietary_restrictions = {"vegetarian"}
    session.browse_filter = {"category": "Bites"}
    for key, value in kwargs.items():
        setattr(session, key, value)
    return session


def test_save_then_load_restores_the_full_session(db_factory):
    store = SqlAlchemySessionStore(db_factory())

    saved = store.save(_session(), expected_version=0)
    loaded = SqlAlchemySessionStore(db_factory()).load(CUSTOMER)

    assert saved.version == 1
    assert loaded.version == 1
    assert loaded.same_state_as(_session())
    assert loaded.last_activity_at == NOW


def test_stale_version_raises_conflict(db_factory):
    SqlAlchemySessionStore(db_factory()).save(_session(), expected_version=0)
    first = SqlAlchemySessionStore(db_factory())
    second = SqlAlchemySessionStore(db_factory())
    mine = first.load(CUSTOMER)
    theirs = second.load(CUSTOMER)

    mine.step = states.CART_REVIEW
    first.save(mine, expected_version=mine.version)

    theirs.cart = []
    with pytest.raises(ConcurrencyConflict):
        second.save(theirs, expected_version=theirs.version)

    reloaded = second.load(CUSTOMER)
    assert reloaded.version == 2
    assert reloaded.step == states.CART_REVIEW
    assert reloaded.cart[0].quantity == 2


def test_second_insert_of_new_session_conflicts(db_factory):
    SqlAlchemySessionStore(db_factory()).save(_session(), expected_version=0)

    with pytest.raises(ConcurrencyConflict):
        SqlAlchemySessionStore(db_factory()).save(_session(), expected_version=0)


def test_cached_store_recovers_from_stale_cache_entry(db_factory):
    cache = SessionCache()
    cached = CachedSessionStore(SqlAlchemySessionStore(db_factory()), cache)
    cached.save(_session(), expected_version=0)

    # outro processo grava direto no store durável
    other = SqlAlchemySessionStore(db_factory())
    newer = other.load(CUSTOMER)
    newer.step = states.CART_REVIEW
    other.save(newer, expected_version=1)

    stale = cached.load(CUSTOMER)
    assert stale.version == 1
    with pytest.raises(ConcurrencyConflict):
        cached.save(stale, expected_version=stale.version)

    fresh = cached.load(CUSTOMER)
    assert fresh.version == 2
    assert fresh.step == states.CART_REVIEW


def test_idle_delete_is_conditioned_on_version(db_factory):
    store = SqlAlchemySessionStore(db_factory())
    store.save(_session(last_activity_at=NOW - timedelta(hours=30)), expected_version=0)
    cutoff = NOW - timedelta(hours=24)

    assert store.list_idle(cutoff) == [(CUSTOMER, 1)]
    assert store.delete_if_idle(CUSTOMER, version=5, cutoff=cutoff) is False
    assert store.delete_if_idle(CUSTOMER, version=1, cutoff=cutoff) is True
    assert store.load(CUSTOMER) is None


def test_cleanup_keeps_recent_sessions(db_factory):
    store = SqlAlchemySessionStore(db_factory())
    store.save(_session(last_activity_at=NOW - timedelta(hours=30)), expected_version=0)
    store.save(_session(customer_id="35699000002", last_activity_at=NOW - timedelta(hours=1)), expected_version=0)

    report = expire_idle_sessions(store, ttl_hours=24, now=NOW)

    assert (report.examined, report.deleted) == (1, 1)
    assert store.load(CUSTOMER) is None
    assert store.load("35699000002") is not None


def test_delivery_claim_is_exclusive_until_released_or_expired(db_factory):
    dedup = SqlAlchemyDeduplicator(db_factory(), ttl_seconds=3600)

    assert dedup.claim("wamid.1", CUSTOMER, now=NOW) is True
    assert dedup.claim("wamid.1", CUSTOMER, now=NOW + timedelta(minutes=5)) is False

    dedup.release("wamid.1")
    assert dedup.claim("wamid.1", CUSTOMER, now=NOW) is True

    assert dedup.claim("wamid.1", CUSTOMER, now=NOW + timedelta(hours=2)) is True


def test_purge_expired_deliveries(db_factory):
    dedup = SqlAlchemyDeduplicator(db_factory(), ttl_seconds=60)
    dedup.claim("wamid.old", now=NOW - timedelta(minutes=10))
    dedup.claim("wamid.new", now=NOW)

    assert dedup.purge_expired(now=NOW) == 1
    assert dedup.claim("wamid.new", now=NOW) is False
