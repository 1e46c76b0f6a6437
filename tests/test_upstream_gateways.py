import json

import httpx
import pytest

from chatcommerce.core.errors import UpstreamUnavailable
from chatcommerce.services import catalog, orders, payments
from chatcommerce.services.catalog import HttpCatalogGateway, InMemoryCatalogGateway, build_catalog_gateway
from chatcommerce.services.orders import HttpOrderService, OrderLine, OrderRequest
from chatcommerce.services.payments import HttpPaymentGateway

_REAL_CLIENT = httpx.Client


def _route(monkeypatch, handler):
    calls = []

    def recording(request):
        calls.append(request)
        return handler(request)

    mock = httpx.MockTransport(recording)
    monkeypatch.setattr(httpx, "Client", lambda **kwargs: _REAL_CLIENT(transport=mock, **kwargs))
    return calls


def _order_request():
    line = OrderLine(menu_item_id="702", name="Pastizzi", quantity=2, unit_price_cents=450, subtotal_cents=900)
    return OrderRequest(
        customer_id="35699000001",
        vendor_id="7",
        customer_name="Jane",
        payment_method="cash",
        lines=(line,),
        total_cents=900,
        idempotency_key="wamid.77",
    )


def test_catalog_gateway_maps_vendor_and_menu_payloads(monkeypatch):
    def handler(request):
        if request.url.path.endswith("/vendors"):
            return httpx.Response(200, json=[{"id": 7, "name": " Bridge Bar "}])
        return httpx.Response(
            200,
            json=[
                {"id": 701, "name": "Aperol Spritz", "price": "9.00", "category": "Cocktails"},
                {"id": 704, "name": "Kinnie", "price_cents": 250, "available": False},
            ],
        )

    calls = _route(monkeypatch, handler)
    gateway = HttpCatalogGateway("https://catalog.test/api/", timeout=2, token="secret")

    [vendor] = gateway.list_active_vendors()
    items = gateway.list_menu_items("7")

    assert (vendor.id, vendor.name) == ("7", "Bridge Bar")
    assert [(item.id, item.vendor_id, item.price_cents, item.available) for item in items] == [
        ("701", "7", 900, True),
        ("704", "7", 250, False),
    ]
    assert calls[0].headers["Authorization"] == "Bearer secret"
    assert calls[1].url.path == "/api/vendors/7/menu-items"


def test_catalog_server_error_is_upstream_unavailable(monkeypatch):
    _route(monkeypatch, lambda request: httpx.Response(500, json={"detail": "down"}))

    with pytest.raises(UpstreamUnavailable) as exc_info:
        HttpCatalogGateway("https://catalog.test", timeout=2).list_active_vendors()

    assert exc_info.value.service == "catalog"


def test_catalog_timeout_is_upstream_unavailable(monkeypatch):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    _route(monkeypatch, handler)

    with pytest.raises(UpstreamUnavailable):
        HttpCatalogGateway("https://catalog.test", timeout=2).list_menu_items("7")


def test_order_service_sends_idempotency_key(monkeypatch):
    calls = _route(monkeypatch, lambda request: httpx.Response(201, json={"order_id": "ord-9"}))

    receipt = HttpOrderService("https://orders.test", timeout=2).create_order(_order_request())

    assert receipt.order_id == "ord-9"
    [request] = calls
    assert request.headers["Idempotency-Key"] == "wamid.77"
    assert json.loads(request.content)["total_cents"] == 900


def test_order_response_without_id_is_rejected(monkeypatch):
    _route(monkeypatch, lambda request: httpx.Response(200, json={}))

    with pytest.raises(UpstreamUnavailable):
        HttpOrderService("https://orders.test", timeout=2).create_order(_order_request())


def test_cash_payment_needs_no_upstream_call(monkeypatch):
    calls = _route(monkeypatch, lambda request: httpx.Response(500))

    initiation = HttpPaymentGateway("https://payments.test", timeout=2).initiate(
        "cash", 900, idempotency_key="wamid.1"
    )

    assert initiation.pay_url is None
    assert calls == []


def test_revolut_payment_returns_pay_url(monkeypatch):
    calls = _route(
        monkeypatch,
        lambda request: httpx.Response(200, json={"reference": "rev-1", "payUrl": "https://pay.test/rev-1"}),
    )

    initiation = HttpPaymentGateway("https://payments.test", timeout=2).initiate(
        "revolut", 900, idempotency_key="wamid.1"
    )

    assert initiation.reference == "rev-1"
    assert initiation.pay_url == "https://pay.test/rev-1"
    assert calls[0].headers["Idempotency-Key"] == "wamid.1"


def test_factories_pick_in_memory_adapters_without_urls():
    assert isinstance(build_catalog_gateway("", timeout=2), InMemoryCatalogGateway)
    assert isinstance(orders.build_order_service("", timeout=2), orders.InMemoryOrderService)
    assert isinstance(payments.build_payment_gateway("", timeout=2), payments.InMemoryPaymentGateway)
    assert isinstance(catalog.build_catalog_gateway("https://catalog.test", timeout=2), HttpCatalogGateway)
