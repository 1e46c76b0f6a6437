import asyncio

import pytest
from fastapi.testclient import TestClient

from chatcommerce.deps import get_conversation_service, get_session_store
from chatcommerce.routers import webhook
from chatcommerce.services.conversation import STATUS_PROCESSED, EventOutcome
from tests.fakes import CUSTOMER, BrokenStore, build_service


def _cloud_payload(message_id, *, text=None, selection=None):
    if selection:
        message = {
            "id": message_id,
            "from": CUSTOMER,
            "type": "interactive",
            "interactive": {"type": "list_reply", "list_reply": {"id": selection[0], "title": selection[1]}},
        }
    else:
        message = {"id": message_id, "from": CUSTOMER, "type": "text", "text": {"body": text}}
    return {"entry": [{"changes": [{"value": {"messages": [message]}}]}]}


@pytest.fixture
def api(monkeypatch):
    from chatcommerce import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    monkeypatch.setattr(webhook, "META_WA_VERIFY_TOKEN", "verify-me")

    ctx = build_service()
    main.app.dependency_overrides[get_conversation_service] = lambda: ctx.service
    main.app.dependency_overrides[get_session_store] = lambda: ctx.store
    with TestClient(main.app) as client:
        yield client, ctx
    main.app.dependency_overrides.clear()


def test_health_and_root(api):
    client, _ = api

    assert client.get("/").json() == {"status": "ok"}
    health = client.get("/health")
    assert health.json() == {"status": "healthy"}
    assert health.headers["X-Request-ID"]


def test_webhook_verification(api):
    client, _ = api
    params = {"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"}

    ok = client.get("/webhook", params=params)
    denied = client.get("/webhook", params={**params, "hub.verify_token": "wrong"})

    assert ok.status_code == 200
    assert ok.text == "12345"
    assert denied.status_code == 403


def test_webhook_processes_text_then_list_reply(api):
    client, ctx = api

    greeted = client.post("/webhook", json=_cloud_payload("wamid.1", text="hi"))
    selected = client.post("/webhook", json=_cloud_payload("wamid.2", selection=("vendor_7", "Bridge Bar")))

    assert greeted.json() == {"delivery_id": "wamid.1", "status": "processed", "step": "vendor_selection"}
    assert selected.json()["step"] == "menu_browsing"
    assert ctx.store.load(CUSTOMER).vendor_id == "7"
    assert ctx.provider.messages_to(CUSTOMER)


def test_webhook_redelivery_is_acknowledged_once(api):
    client, ctx = api
    client.post("/webhook", json=_cloud_payload("wamid.1", text="hi"))
    sent_before = len(ctx.provider.sent)

    response = client.post("/webhook", json=_cloud_payload("wamid.1", text="hi"))

    assert response.status_code == 200
    assert response.json()["status"] == "duplicate"
    assert len(ctx.provider.sent) == sent_before


def test_webhook_ignores_status_callbacks_and_invalid_json(api):
    client, _ = api
    status_only = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.out", "status": "delivered"}]}}]}]}

    assert client.post("/webhook", json=status_only).json() == {"status": "ignored"}
    invalid = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert invalid.json() == {"status": "ignored"}


def test_webhook_asks_for_redelivery_on_storage_failure(monkeypatch):
    from chatcommerce import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    ctx = build_service(store=BrokenStore())
    main.app.dependency_overrides[get_conversation_service] = lambda: ctx.service
    try:
        with TestClient(main.app) as client:
            response = client.post("/webhook", json=_cloud_payload("wamid.9", text="hi"))
    finally:
        main.app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["status"] == "retry"
    assert ctx.dedup.claim("wamid.9") is True


def test_simulator_round_trip_and_session_inspection(api):
    client, _ = api

    first = client.post("/simulator/message", json={"customer_id": CUSTOMER, "text": "hi"})
    second = client.post(
        "/simulator/message", json={"customer_id": CUSTOMER, "text": "", "selection_id": "vendor_7"}
    )
    session = client.get(f"/simulator/sessions/{CUSTOMER}")

    assert first.status_code == 200
    assert first.json()["step"] == "vendor_selection"
    assert first.json()["messages"][-1]["type"] == "choice"
    assert second.json()["attempts"] == 1
    assert session.json()["vendor_id"] == "7"
    assert session.json()["version"] == 2


def test_simulator_unknown_session_is_404(api):
    client, _ = api

    assert client.get("/simulator/sessions/35600000000").status_code == 404


def test_simulator_rejects_blank_customer(api):
    client, _ = api

    assert client.post("/simulator/message", json={"customer_id": "  ", "text": "hi"}).status_code == 422


def test_internal_metrics_lists_counters(api):
    client, _ = api
    client.post("/simulator/message", json={"customer_id": CUSTOMER, "text": "hi"})

    body = client.get("/internal/metrics").json()

    assert "POST /simulator/message" in body["endpoints"]
    assert body["counters"]


def test_webhook_handles_events_off_the_event_loop(monkeypatch):
    from chatcommerce import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)
    ctx = build_service()
    loop_running = []

    def handle_event(event):
        try:
            asyncio.get_running_loop()
            loop_running.append(True)
        except RuntimeError:
            loop_running.append(False)
        return EventOutcome(status=STATUS_PROCESSED, step="greeting")

    monkeypatch.setattr(ctx.service, "handle_event", handle_event)
    main.app.dependency_overrides[get_conversation_service] = lambda: ctx.service
    try:
        with TestClient(main.app) as client:
            response = client.post("/webhook", json=_cloud_payload("wamid.t1", text="hi"))
    finally:
        main.app.dependency_overrides.clear()

    assert response.status_code == 200
    assert loop_running == [False]
