"""Data models for World Peas storefront entities."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Decimal in memory, JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

CUSTOMER_INFO_FIELDS = ("full_name", "address", "city", "state", "zip_code", "country")


class WireModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        """Dump as a JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Product(WireModel):
    """Represents a product in the catalog."""

    id: str = Field(description="Product ID")
    name: str = Field(description="Display name")
    price: str = Field(default="", description="Formatted price string")
    price_value: Money = Field(default=Decimal("0"), description="Numeric unit price")
    description: str = Field(default="", description="Product description")
    location: str = Field(default="", description="Origin location")
    farm: str = Field(default="", description="Supplier name")
    category: Optional[str] = Field(None, description="Category name")
    images: list[str] = Field(default_factory=list, description="Image URLs, first is primary")
    dietary: list[str] = Field(default_factory=list, description="Dietary tags")
    is_favorite: bool = Field(default=False, description="Favorite flag stored on the server")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    @property
    def first_image(self) -> Optional[str]:
        return self.images[0] if self.images else None


class Category(WireModel):
    """Represents a product category."""

    id: Optional[str] = None
    name: str
    description: Optional[str] = None


class CartLine(WireModel):
    """Represents one line in the shopping cart."""

    id: str = Field(description="Product ID")
    name: str
    price: str = ""
    price_value: Money = Decimal("0")
    image: Optional[str] = None
    quantity: int = Field(ge=1, description="Quantity of the product")

    @property
    def subtotal(self) -> Decimal:
        return self.price_value * self.quantity


class CustomerInfo(WireModel):
    """Shipping details captured at checkout."""

    full_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name in CUSTOMER_INFO_FIELDS if not getattr(self, name).strip()]

    def is_complete(self) -> bool:
        return not self.missing_fields()


class Order(WireModel):
    """Represents an order as submitted to, or returned by, the gateway."""

    id: Optional[str] = Field(None, description="Assigned by the gateway")
    customer_info: CustomerInfo
    items: list[CartLine] = Field(default_factory=list)
    total: Money = Decimal("0")
    status: Optional[str] = Field(None, description="Order status (pending, shipped, ...)")
    created_at: Optional[datetime] = None


class PendingOrder(WireModel):
    """An order whose submission failed and awaits a retry."""

    key: str = Field(default_factory=lambda: uuid4().hex, description="Local outbox entry ID")
    order: Order
    failed_at: datetime
    reason: str = ""


class SessionIdentity(WireModel):
    """Authenticated user as reported by the identity provider."""

    full_name: str
    email: str = ""
    avatar_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: dict) -> "SessionIdentity":
        """Build from an identity provider user object."""
        metadata = user.get("user_metadata") or {}
        email = user.get("email") or ""
        full_name = metadata.get("full_name") or email.split("@")[0] or "User"
        return cls(full_name=full_name, email=email, avatar_url=metadata.get("avatar_url"))


class SiteSettings(WireModel):
    """Site display settings."""

    title: str = "World Peas"
    description: str = "新鲜健康的农产品直送到家"


class PageContent(WireModel):
    title: str = ""
    content: str = ""


class PagesContent(WireModel):
    """Static page content shown from the menu."""

    newsstand: PageContent = Field(default_factory=lambda: PageContent(title="新闻厅"))
    about: PageContent = Field(default_factory=lambda: PageContent(title="关于我们"))


class CartNotification(WireModel):
    """Transient notice shown after an item is added to the cart."""

    product_id: str
    name: str
    image: Optional[str] = None
    quantity: int


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str
