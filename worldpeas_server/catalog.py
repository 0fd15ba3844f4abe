"""Catalog state: products, categories and the derived browsing view."""

import asyncio
import logging
from enum import Enum
from typing import Iterable, Iterator, Optional

from .errors import GatewayError
from .gateway import GatewayClient
from .models import Category, Product

logger = logging.getLogger(__name__)


class SortOption(str, Enum):
    DEFAULT = "default"
    PRICE = "price"


def filter_products(
    products: Iterable[Product], search_term: str = "", category: str = ""
) -> Iterator[Product]:
    """
    Yield products matching a search term within an optional category.

    A product matches when its name or category contains the search term,
    case-insensitively. An empty category means all categories.
    """
    term = search_term.lower()
    for product in products:
        if category and product.category != category:
            continue
        if term in product.name.lower() or (
            product.category is not None and term in product.category.lower()
        ):
            yield product


def sort_products(products: Iterable[Product], option: SortOption = SortOption.DEFAULT) -> list[Product]:
    """Order products; price ordering is stable so equal prices keep catalog order."""
    if option == SortOption.PRICE:
        return sorted(products, key=lambda p: p.price_value)
    return list(products)


class CatalogState:
    """Owns the loaded product and category lists plus the browsing filters."""

    def __init__(self, gateway: GatewayClient) -> None:
        self.gateway = gateway
        self.products: list[Product] = []
        self.categories: list[Category] = []
        self.search_term = ""
        self.sort_option = SortOption.DEFAULT
        self.selected_category = ""
        self.favorites: set[str] = set()
        self.loading = False

    async def load_products(self) -> bool:
        """Replace the product list from the gateway; keep the old one on failure."""
        self.loading = True
        try:
            products = await self.gateway.list_products()
        except GatewayError as e:
            logger.error(f"Failed to load products: {e}")
            return False
        finally:
            self.loading = False

        self.products = products
        logger.info(f"Loaded {len(products)} products")
        return True

    async def load_categories(self) -> bool:
        """Replace the category list from the gateway; keep the old one on failure."""
        try:
            categories = await self.gateway.list_categories()
        except GatewayError as e:
            logger.error(f"Failed to load categories: {e}")
            return False

        self.categories = categories
        logger.info(f"Loaded {len(categories)} categories")
        return True

    async def load(self) -> bool:
        """Load products and categories; True only if both succeeded."""
        results = await asyncio.gather(self.load_products(), self.load_categories())
        return all(results)

    @property
    def category_names(self) -> list[str]:
        return [category.name for category in self.categories]

    def get_product(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def set_search_term(self, search_term: str) -> None:
        self.search_term = search_term

    def set_sort_option(self, option: str) -> None:
        """
        Set the sort option.

        Raises:
            ValueError: If option is not 'default' or 'price'
        """
        self.sort_option = SortOption(option)

    def set_category(self, category: str) -> None:
        self.selected_category = category

    def filter(self, search_term: str, category: str = "") -> Iterator[Product]:
        return filter_products(self.products, search_term, category)

    def sort(self, products: Iterable[Product], option: SortOption) -> list[Product]:
        return sort_products(products, option)

    def visible_products(self) -> list[Product]:
        """Products for the current search term, category and sort option."""
        return self.sort(self.filter(self.search_term, self.selected_category), self.sort_option)

    def toggle_favorite(self, product_id: str) -> bool:
        """Flip the local favorite mark; returns the new state."""
        if product_id in self.favorites:
            self.favorites.remove(product_id)
            return False
        self.favorites.add(product_id)
        return True

    def is_favorite(self, product_id: str) -> bool:
        return product_id in self.favorites
