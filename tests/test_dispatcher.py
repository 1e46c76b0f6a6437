from chatcommerce.fsm.messages import ChoiceMessage, ChoiceOption, TextMessage
from chatcommerce.services.audit import InMemoryAuditSink
from chatcommerce.services.dispatcher import MessageDispatcher, render_choice
from chatcommerce.whatsapp.base import WhatsAppSendResult
from chatcommerce.whatsapp.mock_provider import MockWhatsAppProvider
from tests.fakes import CUSTOMER


class _DownProvider:
    def __init__(self, raise_error=False):
        self.raise_error = raise_error
        self.calls = 0

    def send_text(self, *, to_phone, text):
        self.calls += 1
        if self.raise_error:
            raise RuntimeError("socket closed")
        return WhatsAppSendResult(status="failed", message_type="text", error="WhatsApp error 500")

    def send_interactive(self, *, to_phone, payload):
        return self.send_text(to_phone=to_phone, text="")

    def parse_webhook(self, payload):
        return []


def _choice(count, label="Option"):
    return ChoiceMessage(
        prompt="Pick one",
        options=tuple(ChoiceOption(id=f"opt_{i}", label=f"{label} {i}") for i in range(1, count + 1)),
    )


def test_three_options_render_as_reply_buttons():
    payload = render_choice(_choice(3))

    assert payload["type"] == "button"
    assert [button["reply"]["id"] for button in payload["action"]["buttons"]] == ["opt_1", "opt_2", "opt_3"]


def test_more_options_render_as_list_capped_at_ten_rows():
    payload = render_choice(_choice(14))

    assert payload["type"] == "list"
    rows = payload["action"]["sections"][0]["rows"]
    assert len(rows) == 10
    assert rows[0] == {"id": "opt_1", "title": "Option 1"}


def test_titles_are_clipped_to_platform_limits():
    long_label = "Maltese Platter With Extra Gbejniet"
    buttons = render_choice(_choice(1, label=long_label))["action"]["buttons"]
    rows = render_choice(_choice(5, label=long_label))["action"]["sections"][0]["rows"]

    assert len(buttons[0]["reply"]["title"]) == 20
    assert buttons[0]["reply"]["title"].endswith("…")
    assert len(rows[0]["title"]) == 24


def test_dispatch_audits_every_outbound_message():
    provider = MockWhatsAppProvider()
    audit = InMemoryAuditSink()

    results = MessageDispatcher(provider, audit).dispatch(
        CUSTOMER, [TextMessage(body="Hello"), _choice(2)], vendor_id="7"
    )

    assert [result.status for result in results] == ["sent", "sent"]
    assert [entry["type"] for entry in provider.messages_to(CUSTOMER)] == ["text", "interactive"]
    entries = audit.for_customer(CUSTOMER, direction="out")
    assert [entry.message_type for entry in entries] == ["text", "interactive"]
    assert all(entry.vendor_id == "7" for entry in entries)


def test_provider_failure_is_recorded_not_raised():
    audit = InMemoryAuditSink()

    results = MessageDispatcher(_DownProvider(raise_error=True), audit).dispatch(
        CUSTOMER, [TextMessage(body="Hello")]
    )

    assert results[0].failed
    assert "socket closed" in results[0].error
    [entry] = audit.for_customer(CUSTOMER)
    assert entry.status == "failed"


def test_failed_send_falls_back_to_secondary_provider():
    primary = _DownProvider()
    fallback = MockWhatsAppProvider()
    audit = InMemoryAuditSink()

    results = MessageDispatcher(primary, audit, fallback_provider=fallback).dispatch(
        CUSTOMER, [TextMessage(body="Hello")]
    )

    assert primary.calls == 1
    assert results[0].status == "sent"
    assert fallback.messages_to(CUSTOMER)[0]["text"] == "Hello"


def test_inbound_messages_are_logged_with_delivery_id():
    audit = InMemoryAuditSink()

    MessageDispatcher(MockWhatsAppProvider(), audit).log_inbound(
        CUSTOMER, "Bridge Bar", delivery_id="wamid.42", selection_id="vendor_7"
    )

    [entry] = audit.for_customer(CUSTOMER, direction="in")
    assert entry.provider_message_id == "wamid.42"
    assert entry.message_type == "interactive"
    assert entry.payload["selection_id"] == "vendor_7"
