"""HTTP client for the external café backend (catalog reads and sale creation)."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as SchemaValidationError

from cafe_pos.app.core.config import settings
from cafe_pos.app.schemas.catalog import AddOn, Product
from cafe_pos.app.schemas.sale import SalePayload, SaleResponse

logger = logging.getLogger(__name__)

PRODUCTS_PATH = "/api/productos"
ADD_ONS_PATH = "/api/agregados"
SALES_PATH = "/api/ventas"


class BackendApiError(Exception):
    """Structured error from the café backend (4xx responses, rejected sales)."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(message)


class BackendClient:
    """Async client for the product read, add-on read and sale create endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.BACKEND_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    @staticmethod
    def _handle_response(resp: httpx.Response) -> Any:
        """Parse a JSON body; 4xx become ``BackendApiError``, 5xx are raised by httpx."""
        if resp.status_code >= 500:
            resp.raise_for_status()

        try:
            data = resp.json()
        except ValueError:
            raise BackendApiError(
                status_code=resp.status_code,
                message=f"Non-JSON response: {resp.text[:200] if resp.text else '(empty)'}",
            )

        if resp.status_code >= 400:
            message = None
            if isinstance(data, dict):
                message = data.get("error") or data.get("message")
            raise BackendApiError(
                status_code=resp.status_code,
                message=str(message or f"HTTP {resp.status_code}"),
            )
        return data

    @staticmethod
    def _unwrap_list(data: Any) -> list[dict[str, Any]]:
        """Accept either a bare list or a ``{"success": ..., "data": [...]}`` envelope."""
        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise BackendApiError(status_code=200, message="Expected a list in response body")
        return data

    async def fetch_products(self) -> list[Product]:
        async with self._client() as client:
            resp = await client.get(PRODUCTS_PATH)
        products: list[Product] = []
        for raw in self._unwrap_list(self._handle_response(resp)):
            try:
                products.append(Product.model_validate(raw))
            except SchemaValidationError as exc:
                logger.warning("Skipping malformed product %r: %s", raw, exc)
        return products

    async def fetch_add_ons(self) -> list[AddOn]:
        async with self._client() as client:
            resp = await client.get(ADD_ONS_PATH)
        add_ons: list[AddOn] = []
        for raw in self._unwrap_list(self._handle_response(resp)):
            try:
                add_ons.append(AddOn.model_validate(raw))
            except SchemaValidationError as exc:
                logger.warning("Skipping malformed add-on %r: %s", raw, exc)
        return add_ons

    async def create_sale(self, payload: SalePayload) -> SaleResponse:
        async with self._client() as client:
            resp = await client.post(
                SALES_PATH,
                json=payload.to_wire(),
                headers={"Content-Type": "application/json"},
            )
        try:
            result = SaleResponse.model_validate(self._handle_response(resp))
        except SchemaValidationError:
            raise BackendApiError(
                status_code=resp.status_code,
                message="Unexpected sale response from backend",
            )
        if not result.success:
            raise BackendApiError(
                status_code=resp.status_code,
                message=result.error or "Sale rejected by backend",
            )
        return result
