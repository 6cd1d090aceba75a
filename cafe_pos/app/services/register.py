from __future__ import annotations

from cafe_pos.app.core.config import settings
from cafe_pos.app.core.database import Base, SessionLocal, engine
from cafe_pos.app.core.events import EventBus
from cafe_pos.app.services.backend_client import BackendClient
from cafe_pos.app.services.cart import CartStore
from cafe_pos.app.services.catalog import ProductCatalog
from cafe_pos.app.services.drawer import CashDrawerSession
from cafe_pos.app.services.drawer_store import DrawerStateStore
from cafe_pos.app.services.sale_submission import SaleSubmission


class Register:
    """Everything one register needs, wired around a single event bus."""

    def __init__(
        self,
        client: BackendClient,
        store: DrawerStateStore | None = None,
        register_id: str | None = None,
    ) -> None:
        self.register_id = register_id or settings.REGISTER_ID
        self.bus = EventBus()
        self.client = client
        self.catalog = ProductCatalog(client, bus=self.bus)
        self.cart = CartStore(bus=self.bus, product_lookup=self.catalog.get)
        if store is not None:
            self.drawer = CashDrawerSession.restore(store, self.register_id, bus=self.bus)
        else:
            self.drawer = CashDrawerSession(self.register_id, bus=self.bus)
        self.submission = SaleSubmission(
            client, catalog=self.catalog, drawer=self.drawer, bus=self.bus
        )


def build_register() -> Register:
    """Register backed by the configured backend and local drawer store."""
    Base.metadata.create_all(bind=engine)
    return Register(BackendClient(), DrawerStateStore(SessionLocal))
