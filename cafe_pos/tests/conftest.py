"""Shared test fixtures.

The external café backend is replaced by an ``httpx.MockTransport`` and the
drawer store by an in-memory SQLite database, so tests never touch the network
or a file on disk.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_pos.app.api.deps import get_register
from cafe_pos.app.core.database import Base
from cafe_pos.app.core.events import Event, EventBus, EventType
from cafe_pos.app.main import app
from cafe_pos.app.schemas.catalog import AddOn, Product
from cafe_pos.app.services.backend_client import BackendClient
from cafe_pos.app.services.cart import CartStore
from cafe_pos.app.services.drawer import CashDrawerSession
from cafe_pos.app.services.drawer_store import DrawerStateStore
from cafe_pos.app.services.register import Register

BACKEND_URL = "http://backend.test"


# ─── Fake backend ────────────────────────────────────────────────────────────


class FakeBackend:
    """In-process stand-in for the café backend, driven through httpx."""

    def __init__(self) -> None:
        self.products: list[dict[str, Any]] = [
            {"id": 1, "name": "Café Americano", "category": "Bebidas Calientes",
             "price": 2500, "stock": 50, "active": True},
            {"id": 2, "name": "Cappuccino", "category": "Bebidas Calientes",
             "price": 3500, "stock": 30, "active": True},
            {"id": 3, "name": "Croissant", "category": "Panadería",
             "price": 1800, "stock": 25, "active": True},
        ]
        self.add_ons: list[dict[str, Any]] = [
            {"id": 10, "name": "Leche de avena", "category": "Leches", "additionalPrice": 500},
            {"id": 11, "name": "Shot extra", "category": "Café", "additionalPrice": 600},
        ]
        self.add_ons_status = 200
        self.sale_status = 201
        self.sale_body: dict[str, Any] | None = None
        self.sale_network_error = False
        self.sales: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/productos":
            return httpx.Response(200, json={"success": True, "data": self.products})
        if path == "/api/agregados":
            if self.add_ons_status != 200:
                return httpx.Response(self.add_ons_status, json={"error": "unavailable"})
            return httpx.Response(200, json=self.add_ons)
        if path == "/api/ventas" and request.method == "POST":
            if self.sale_network_error:
                raise httpx.ConnectError("connection refused", request=request)
            self.sales.append(json.loads(request.content))
            body = self.sale_body or {"success": True, "saleId": 100 + len(self.sales)}
            return httpx.Response(self.sale_status, json=body)
        return httpx.Response(404, json={"error": "Endpoint no encontrado"})

    def sale_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path == "/api/ventas")


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def backend_client(backend: FakeBackend) -> BackendClient:
    return BackendClient(
        base_url=BACKEND_URL, timeout=5.0, transport=httpx.MockTransport(backend.handler)
    )


# ─── Domain fixtures ─────────────────────────────────────────────────────────


@pytest.fixture()
def coffee() -> Product:
    return Product(
        id=1, name="Café Americano", category="Bebidas Calientes",
        price=Decimal("2500"), stock=50,
    )


@pytest.fixture()
def cappuccino() -> Product:
    return Product(
        id=2, name="Cappuccino", category="Bebidas Calientes",
        price=Decimal("3500"), stock=30,
    )


@pytest.fixture()
def croissant() -> Product:
    return Product(
        id=3, name="Croissant", category="Panadería",
        price=Decimal("1800"), stock=25,
    )


@pytest.fixture()
def oat_milk() -> AddOn:
    return AddOn(id=10, name="Leche de avena", category="Leches", additional_price=Decimal("500"))


@pytest.fixture()
def extra_shot() -> AddOn:
    return AddOn(id=11, name="Shot extra", category="Café", additional_price=Decimal("600"))


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def events(bus: EventBus) -> list[Event]:
    """Every event published on ``bus`` during the test, in order."""
    seen: list[Event] = []
    for event_type in EventType:
        bus.subscribe(event_type, seen.append)
    return seen


@pytest.fixture()
def cart(bus: EventBus) -> CartStore:
    return CartStore(bus=bus)


# ─── Drawer persistence ──────────────────────────────────────────────────────


@pytest.fixture()
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def drawer_store(session_factory: sessionmaker[Session]) -> DrawerStateStore:
    return DrawerStateStore(session_factory)


class FixedClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def drawer(drawer_store: DrawerStateStore, bus: EventBus, clock: FixedClock) -> CashDrawerSession:
    return CashDrawerSession(register_id="caja-test", store=drawer_store, bus=bus, clock=clock)


# ─── API ─────────────────────────────────────────────────────────────────────


@pytest.fixture()
def register(backend_client: BackendClient, drawer_store: DrawerStateStore) -> Register:
    return Register(backend_client, drawer_store, register_id="caja-test")


@pytest.fixture()
def client(register: Register) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to an isolated register."""
    app.dependency_overrides[get_register] = lambda: register
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
