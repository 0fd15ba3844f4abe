"""Pytest configuration and fake collaborators for the storefront tests."""

import json
from typing import Any, Optional

import httpx
import pytest

from worldpeas_server.config import Config
from worldpeas_server.models import CustomerInfo
from worldpeas_server.storefront import Storefront

API_URL = "https://gateway.test/functions/v1/make-server"
AUTH_URL = "https://identity.test"
API_PREFIX = "/functions/v1/make-server"

VALID_TOKEN = "token-ada"


def product_data(
    id: str, name: str, price_value: float, category: Optional[str] = None, **extra: Any
) -> dict:
    data = {
        "id": id,
        "name": name,
        "price": f"¥{price_value:.2f}",
        "priceValue": price_value,
        "description": f"Fresh {name.lower()}",
        "location": "Yunnan",
        "farm": "Green Valley",
        "images": [f"https://img.test/{id}-1.jpg", f"https://img.test/{id}-2.jpg"],
        "dietary": ["vegan"],
        "isFavorite": False,
        "createdAt": "2024-05-01T08:00:00Z",
    }
    if category is not None:
        data["category"] = category
    data.update(extra)
    return data


class FakeGateway:
    """In-memory stand-in for the key-value gateway routes."""

    def __init__(self) -> None:
        self.products = [
            product_data("1", "Apple", 5, "Fruit"),
            product_data("2", "Carrot", 3, "Veg"),
        ]
        self.categories = [
            {"id": "c1", "name": "Fruit", "description": "Tree and vine fruit"},
            {"id": "c2", "name": "Veg"},
        ]
        self.settings = {"title": "World Peas Market", "description": "Farm to door"}
        self.pages = {
            "newsstand": {"title": "News", "content": "Harvest updates"},
            "about": {"title": "About", "content": "Family farms"},
        }
        self.orders: list[dict] = []
        self.users: list[dict] = []
        # paths (without prefix) answered with a 500
        self.failing: set[str] = set()
        # paths whose successful answer is replaced by an unreadable body
        self.malformed: set[str] = set()
        self.offline = False
        self.requests: list[tuple[str, str]] = []
        self.authorization: list[Optional[str]] = []
        self._next_id = 100

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(API_PREFIX)
        self.requests.append((request.method, path))
        self.authorization.append(request.headers.get("Authorization"))

        if self.offline:
            raise httpx.ConnectError("network down", request=request)
        if path in self.failing:
            return httpx.Response(500, json={"error": f"Failed to handle {path}"})

        response = self._route(request.method, path, request)
        if path in self.malformed and response.is_success:
            return httpx.Response(200, text="<html>Service Unavailable</html>")
        return response

    @staticmethod
    def _find(records: list[dict], record_id: str) -> Optional[dict]:
        return next((r for r in records if r["id"] == record_id), None)

    def _collection(
        self, method: str, records: list[dict], record_id: Optional[str], body: Any, label: str
    ) -> httpx.Response:
        """Serve create/read/update/delete for one key prefix."""
        if record_id is None:
            if method == "GET":
                return httpx.Response(200, json=records)
            record = {"id": str(self._next_id), **body, "createdAt": "2024-05-03T00:00:00Z"}
            self._next_id += 1
            records.append(record)
            return httpx.Response(200, json=record)

        if method == "DELETE":
            records[:] = [r for r in records if r["id"] != record_id]
            return httpx.Response(200, json={"success": True})

        existing = self._find(records, record_id)
        if existing is None:
            return httpx.Response(404, json={"error": f"{label} not found"})
        if method == "PUT":
            existing.update({**body, "id": record_id, "updatedAt": "2024-05-04T00:00:00Z"})
        return httpx.Response(200, json=existing)

    def _route(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        parts = path.strip("/").split("/")
        record_id = parts[1] if len(parts) > 1 else None

        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if parts[0] == "products":
            return self._collection(method, self.products, record_id, body, "Product")
        if parts[0] == "categories":
            return self._collection(method, self.categories, record_id, body, "Category")
        if path == "/settings" and method == "GET":
            return httpx.Response(200, json=self.settings)
        if path == "/settings" and method == "PUT":
            self.settings = {**body, "updatedAt": "2024-05-02T00:00:00Z"}
            return httpx.Response(200, json=self.settings)
        if path == "/pages" and method == "GET":
            return httpx.Response(200, json=self.pages)
        if path == "/pages" and method == "PUT":
            self.pages = {**body, "updatedAt": "2024-05-02T00:00:00Z"}
            return httpx.Response(200, json=self.pages)
        if path == "/orders" and method == "POST":
            order = {
                "id": str(1000 + len(self.orders)),
                **body,
                "status": "pending",
                "createdAt": "2024-05-01T09:00:00Z",
            }
            self.orders.append(order)
            return httpx.Response(200, json=order)
        if path == "/orders" and method == "GET":
            return httpx.Response(200, json=list(reversed(self.orders)))
        if parts[0] == "orders" and method in ("GET", "PUT"):
            return self._collection(method, self.orders, record_id, body, "Order")
        if path == "/signup" and method == "POST":
            if any(u["email"] == body["email"] for u in self.users):
                return httpx.Response(400, json={"error": "该邮箱已被注册"})
            user = {"id": f"u{len(self.users)}", "email": body["email"], "fullName": body["fullName"]}
            self.users.append({**user, "password": body["password"]})
            return httpx.Response(200, json={"success": True, "user": user})

        return httpx.Response(404, json={"error": "Not found"})


class FakeIdentity:
    """Stand-in for the hosted identity provider."""

    def __init__(self, gateway: FakeGateway) -> None:
        self.gateway = gateway
        self.tokens: dict[str, dict] = {
            VALID_TOKEN: {
                "email": "ada@example.com",
                "user_metadata": {"full_name": "Ada Lovelace", "avatar_url": "https://img.test/ada.png"},
            }
        }
        self.passwords = {"ada@example.com": ("secret1", VALID_TOKEN)}
        # replaces the token endpoint reply when set
        self.token_response: Any = None
        self.offline = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("identity down", request=request)

        if request.url.path == "/auth/v1/user":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            user = self.tokens.get(token)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json=user)

        if request.url.path == "/auth/v1/token":
            if self.token_response is not None:
                return httpx.Response(200, json=self.token_response)
            body = json.loads(request.content)
            email, password = body["email"], body["password"]
            for user in self.gateway.users:
                if user["email"] == email and email not in self.passwords:
                    token = f"token-{user['id']}"
                    self.passwords[email] = (user["password"], token)
                    self.tokens[token] = {"email": email, "user_metadata": {"full_name": user["fullName"]}}
            expected = self.passwords.get(email)
            if expected is None or expected[0] != password:
                return httpx.Response(
                    400,
                    json={"error": "invalid_grant", "error_description": "Invalid login credentials"},
                )
            token = expected[1]
            return httpx.Response(200, json={"access_token": token, "user": self.tokens[token]})

        return httpx.Response(404)


@pytest.fixture
def gateway_backend() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def identity_backend(gateway_backend: FakeGateway) -> FakeIdentity:
    return FakeIdentity(gateway_backend)


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        api_url=API_URL,
        auth_url=AUTH_URL,
        api_key="anon-key",
        storage_file=str(tmp_path / "storage.json"),
        notification_delay=0.05,
    )


@pytest.fixture
def make_storefront(config, gateway_backend, identity_backend):
    """Factory so tests can build a second storefront over the same storage file."""

    def _make(**overrides: Any) -> Storefront:
        return Storefront(
            config.model_copy(update=overrides),
            gateway_transport=httpx.MockTransport(gateway_backend.handler),
            identity_transport=httpx.MockTransport(identity_backend.handler),
        )

    return _make


@pytest.fixture
def storefront(make_storefront) -> Storefront:
    return make_storefront()


@pytest.fixture
async def loaded_storefront(storefront: Storefront) -> Storefront:
    await storefront.bootstrap()
    return storefront


@pytest.fixture
def customer_info() -> CustomerInfo:
    return CustomerInfo(
        full_name="Ada Lovelace",
        address="12 Orchard Lane",
        city="Kunming",
        state="Yunnan",
        zip_code="650000",
        country="China",
    )
