"""World Peas gateway API client."""

import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import Config
from .errors import GatewayError, MalformedResponseError
from .models import Category, Order, PagesContent, Product, SiteSettings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class GatewayClient:
    """Client for the key-value gateway's REST routes."""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the gateway client.

        Args:
            config: Runtime configuration (base URL and bearer credential)
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.base_url = config.api_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Accept": "application/json",
            },
        )

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """
        Send a request and return the parsed JSON body.

        Raises:
            GatewayError: On transport failure or non-2xx status
            MalformedResponseError: If a successful response body is not JSON
        """
        logger.debug(f"{method} {path}")
        try:
            response = await self.client.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            raise GatewayError(self._error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Malformed JSON from {method} {path}", status_code=response.status_code
            ) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the optional {error: string} message from a failed response."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"

    def _parse_list(self, model: type[ModelT], data: Any) -> list[ModelT]:
        """Parse a list response, skipping entries that fail validation."""
        if not isinstance(data, list):
            raise MalformedResponseError(
                f"Expected a list of {model.__name__}, got {type(data).__name__}"
            )

        items = []
        for item in data:
            try:
                items.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Failed to parse {model.__name__}: {e}")
        return items

    @staticmethod
    def _parse_one(model: type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise MalformedResponseError(f"Invalid {model.__name__} in response: {e}") from e

    # Products

    async def list_products(self) -> list[Product]:
        return self._parse_list(Product, await self._request("GET", "/products"))

    async def get_product(self, product_id: str) -> Product:
        return self._parse_one(Product, await self._request("GET", f"/products/{product_id}"))

    async def create_product(self, data: dict[str, Any]) -> Product:
        return self._parse_one(Product, await self._request("POST", "/products", json=data))

    async def update_product(self, product_id: str, data: dict[str, Any]) -> Product:
        return self._parse_one(
            Product, await self._request("PUT", f"/products/{product_id}", json=data)
        )

    async def delete_product(self, product_id: str) -> bool:
        data = await self._request("DELETE", f"/products/{product_id}")
        return bool(data.get("success")) if isinstance(data, dict) else False

    # Categories

    async def list_categories(self) -> list[Category]:
        return self._parse_list(Category, await self._request("GET", "/categories"))

    async def create_category(self, data: dict[str, Any]) -> Category:
        return self._parse_one(Category, await self._request("POST", "/categories", json=data))

    async def update_category(self, category_id: str, data: dict[str, Any]) -> Category:
        return self._parse_one(
            Category, await self._request("PUT", f"/categories/{category_id}", json=data)
        )

    async def delete_category(self, category_id: str) -> bool:
        data = await self._request("DELETE", f"/categories/{category_id}")
        return bool(data.get("success")) if isinstance(data, dict) else False

    # Orders

    async def list_orders(self) -> list[Order]:
        """List orders, newest first as returned by the gateway."""
        return self._parse_list(Order, await self._request("GET", "/orders"))

    async def get_order(self, order_id: str) -> Order:
        return self._parse_one(Order, await self._request("GET", f"/orders/{order_id}"))

    async def create_order(self, order: Order) -> Order:
        """
        Submit a new order.

        Args:
            order: Customer info, line snapshot and total

        Returns:
            The stored order with its assigned id, status and timestamp
        """
        return self._parse_one(Order, await self._request("POST", "/orders", json=order.to_wire()))

    async def update_order(self, order_id: str, data: dict[str, Any]) -> Order:
        return self._parse_one(Order, await self._request("PUT", f"/orders/{order_id}", json=data))

    # Site content

    async def get_settings(self) -> SiteSettings:
        return self._parse_one(SiteSettings, await self._request("GET", "/settings"))

    async def update_settings(self, settings: SiteSettings) -> SiteSettings:
        return self._parse_one(
            SiteSettings, await self._request("PUT", "/settings", json=settings.to_wire())
        )

    async def get_pages(self) -> PagesContent:
        return self._parse_one(PagesContent, await self._request("GET", "/pages"))

    async def update_pages(self, pages: PagesContent) -> PagesContent:
        return self._parse_one(
            PagesContent, await self._request("PUT", "/pages", json=pages.to_wire())
        )

    # Accounts

    async def signup(self, email: str, password: str, full_name: str) -> dict[str, Any]:
        """
        Create an account through the gateway.

        Returns:
            The created user record ({id, email, fullName})
        """
        data = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "fullName": full_name},
        )
        return data.get("user", {}) if isinstance(data, dict) else {}

    async def health(self) -> bool:
        try:
            data = await self._request("GET", "/health")
        except GatewayError as e:
            logger.warning(f"Gateway health check failed: {e}")
            return False
        return isinstance(data, dict) and data.get("status") == "ok"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
