from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Protocol

import httpx

from chatcommerce.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Vendor:
    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class MenuItem:
    id: str
    vendor_id: str
    name: str
    price_cents: int
    description: str = ""
    category: str = ""
    popular: bool = False
    available: bool = True


class CatalogGateway(Protocol):
    def list_active_vendors(self) -> list[Vendor]:
        ...

    def list_menu_items(self, vendor_id: str) -> list[MenuItem]:
        ...


def price_to_cents(value: Any) -> int:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0
    return int((amount * 100).quantize(Decimal("1")))


def vendor_from_payload(data: dict[str, Any]) -> Vendor:
    return Vendor(
        id=str(data["id"]),
        name=str(data.get("name", "") or "").strip(),
        description=str(data.get("description", "") or "").strip(),
    )


def menu_item_from_payload(vendor_id: str, data: dict[str, Any]) -> MenuItem:
    if "price_cents" in data:
        price_cents = int(data.get("price_cents") or 0)
    else:
        price_cents = price_to_cents(data.get("price", 0))
    return MenuItem(
        id=str(data["id"]),
        vendor_id=str(data.get("vendor_id") or vendor_id),
        name=str(data.get("name", "") or "").strip(),
        price_cents=price_cents,
        description=str(data.get("description", "") or "").strip(),
        category=str(data.get("category", "") or "").strip(),
        popular=bool(data.get("popular", False)),
        available=bool(data.get("available", True)),
    )


class HttpCatalogGateway:
    INTEGRATION_NAME = "catalog"

    def __init__(self, base_url: str, *, timeout: float, token: str = "") -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token

    def _get(self, path: str) -> Any:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(f"{self.base_url}{path}", headers=headers)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "catalog request failed path=%s error=%s", path, exc, extra={"integration": self.INTEGRATION_NAME}
            )
            raise UpstreamUnavailable(self.INTEGRATION_NAME, str(exc)) from exc

    def list_active_vendors(self) -> list[Vendor]:
        data = self._get("/vendors?active=true")
        return [vendor_from_payload(entry) for entry in data or []]

    def list_menu_items(self, vendor_id: str) -> list[MenuItem]:
        data = self._get(f"/vendors/{vendor_id}/menu-items")
        return [menu_item_from_payload(vendor_id, entry) for entry in data or []]


class InMemoryCatalogGateway:
    def __init__(self, vendors: list[Vendor], items: list[MenuItem]) -> None:
        self._vendors = list(vendors)
        self._items = list(items)

    @classmethod
    def from_seed(cls, data: dict[str, Any]) -> "InMemoryCatalogGateway":
        vendors = [vendor_from_payload(entry) for entry in data.get("vendors", [])]
        items: list[MenuItem] = []
        for entry in data.get("menu_items", []):
            items.append(menu_item_from_payload(str(entry.get("vendor_id", "")), entry))
        return cls(vendors, items)

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryCatalogGateway":
        with open(path, encoding="utf-8") as handle:
            return cls.from_seed(json.load(handle))

    def list_active_vendors(self) -> list[Vendor]:
        return list(self._vendors)

    def list_menu_items(self, vendor_id: str) -> list[MenuItem]:
        return [item for item in self._items if item.vendor_id == vendor_id]


class CatalogSnapshot:
    """Visão do catálogo buscada uma vez por evento.

    Cada evento cria o seu snapshot; nada aqui sobrevive entre turnos.
    """

    def __init__(self, gateway: CatalogGateway) -> None:
        self._gateway = gateway
        self._vendors: list[Vendor] | None = None
        self._menus: dict[str, list[MenuItem]] = {}

    def vendors(self) -> list[Vendor]:
        if self._vendors is None:
            self._vendors = list(self._gateway.list_active_vendors())
        return self._vendors

    def vendor(self, vendor_id: str | None) -> Vendor | None:
        if not vendor_id:
            return None
        return next((vendor for vendor in self.vendors() if vendor.id == vendor_id), None)

    def menu(self, vendor_id: str) -> list[MenuItem]:
        if vendor_id not in self._menus:
            items = self._gateway.list_menu_items(vendor_id)
            self._menus[vendor_id] = [item for item in items if item.available]
        return self._menus[vendor_id]


DEMO_CATALOG = {
    "vendors": [
        {"id": "1", "name": "Trabuxu Bistro", "description": "Wine bar and Maltese platters in Valletta."},
        {"id": "2", "name": "Bridge Bar", "description": "Cocktails and bites on Republic Street."},
        {"id": "3", "name": "Hugo's Lounge", "description": "Asian fusion by the Sliema strand."},
    ],
    "menu_items": [
        {"id": "101", "vendor_id": "1", "name": "Maltese Platter", "price": "14.50",
         "category": "Starters", "popular": True, "description": "Gbejniet, bigilla and galletti."},
        {"id": "102", "vendor_id": "1", "name": "Rabbit Stew", "price": "18.00",
         "category": "Mains", "popular": True, "description": "Traditional stuffat tal-fenek."},
        {"id": "103", "vendor_id": "1", "name": "Ftira", "price": "8.50",
         "category": "Mains", "description": "Maltese bread with tuna, capers and olives."},
        {"id": "104", "vendor_id": "1", "name": "Kinnie", "price": "2.50", "category": "Drinks"},
        {"id": "201", "vendor_id": "2", "name": "Aperol Spritz", "price": "9.00",
         "category": "Cocktails", "popular": True},
        {"id": "202", "vendor_id": "2", "name": "Pastizzi (4)", "price": "4.00", "category": "Bites"},
        {"id": "301", "vendor_id": "3", "name": "Pad Thai", "price": "13.50", "category": "Mains", "popular": True},
        {"id": "302", "vendor_id": "3", "name": "Gyoza", "price": "7.00", "category": "Starters"},
    ],
}


def build_catalog_gateway(base_url: str, *, timeout: float, token: str = "", seed_path: str = "") -> CatalogGateway:
    if base_url:
        return HttpCatalogGateway(base_url, timeout=timeout, token=token)
    if seed_path:
        logger.info("catalog loaded from seed file path=%s", seed_path)
        return InMemoryCatalogGateway.from_file(seed_path)
    return InMemoryCatalogGateway.from_seed(DEMO_CATALOG)
