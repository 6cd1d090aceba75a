"""Last-fetched product and add-on snapshot for the register.

Reads never touch the backend or rewrite the snapshot; ``refresh`` is the
only write path. The snapshot is authoritative only at fetch time and may be
stale (last fetch wins).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal

import httpx

from cafe_pos.app.core.events import EventBus, EventType
from cafe_pos.app.schemas.catalog import AddOn, Product
from cafe_pos.app.services.backend_client import BackendApiError, BackendClient

logger = logging.getLogger(__name__)

# Offered when the backend add-on list cannot be read.
DEFAULT_ADD_ONS: list[AddOn] = [
    AddOn(id=1, name="Shot de espresso", category="Café", additional_price=Decimal("600")),
    AddOn(id=2, name="Leche de almendras", category="Leches", additional_price=Decimal("500")),
    AddOn(id=3, name="Leche de avena", category="Leches", additional_price=Decimal("500")),
    AddOn(id=4, name="Crema batida", category="Toppings", additional_price=Decimal("400")),
    AddOn(id=5, name="Jarabe de vainilla", category="Jarabes", additional_price=Decimal("350")),
    AddOn(id=6, name="Jarabe de caramelo", category="Jarabes", additional_price=Decimal("350")),
]


class ProductCatalog:
    def __init__(self, client: BackendClient, bus: EventBus | None = None) -> None:
        self._client = client
        self._bus = bus
        self._products: dict[int, Product] = {}
        self._add_ons: dict[int, AddOn] = {a.id: a for a in DEFAULT_ADD_ONS}
        self.add_ons_degraded = True
        self.last_refreshed_at: datetime | None = None

    # ── Read path ───────────────────────────────────────────────────────

    def products(self) -> list[Product]:
        return list(self._products.values())

    def get(self, product_id: int) -> Product | None:
        return self._products.get(product_id)

    def snapshot(self) -> dict[int, Product]:
        return dict(self._products)

    def add_ons(self) -> list[AddOn]:
        return list(self._add_ons.values())

    def get_add_on(self, add_on_id: int) -> AddOn | None:
        return self._add_ons.get(add_on_id)

    # ── Write path ──────────────────────────────────────────────────────

    async def refresh(self) -> list[Product]:
        """Fetch products and add-ons. A product fetch failure keeps the old snapshot."""
        products = await self._client.fetch_products()
        self._products = {p.id: p for p in products}
        self.last_refreshed_at = datetime.now(timezone.utc)

        try:
            add_ons = await self._client.fetch_add_ons()
        except (httpx.HTTPError, BackendApiError) as exc:
            logger.warning("Add-on list unavailable, using built-in list: %s", exc)
            add_ons = []
        else:
            if not add_ons:
                logger.warning("Backend returned no add-ons, using built-in list")
        self.add_ons_degraded = not add_ons
        self._add_ons = {a.id: a for a in (add_ons or DEFAULT_ADD_ONS)}

        self._publish_stock({"source": "refresh", "products": len(self._products)})
        return self.products()

    def load(self, products: list[Product], add_ons: list[AddOn] | None = None) -> None:
        """Install a snapshot obtained elsewhere (seed data, tests)."""
        self._products = {p.id: p for p in products}
        if add_ons is not None:
            self._add_ons = {a.id: a for a in add_ons}
            self.add_ons_degraded = False
        self.last_refreshed_at = datetime.now(timezone.utc)

    def apply_sale(self, sold: Mapping[int, int]) -> None:
        """Decrement the local snapshot by the quantities of a confirmed sale."""
        for product_id, quantity in sold.items():
            product = self._products.get(product_id)
            if product is None:
                continue
            self._products[product_id] = product.model_copy(
                update={"stock": max(0, product.stock - quantity)}
            )
        self._publish_stock(
            {"source": "sale", "sold": {str(k): v for k, v in sold.items()}}
        )

    def _publish_stock(self, detail: dict) -> None:
        if self._bus is not None:
            self._bus.publish(EventType.STOCK_CHANGED, detail)
