"""Cart engine with quantity-merge semantics and the add-to-cart notice."""

import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .catalog import CatalogState
from .errors import InvalidQuantityError
from .models import CartLine, CartNotification

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def format_money(value: Decimal) -> str:
    """Render an amount with two decimals."""
    return str(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def _check_whole_number(quantity: int) -> None:
    # bool is an int subclass but never a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(f"Quantity must be a whole number, got {quantity!r}")


class CartNotifier:
    """Holds the visible add-to-cart notice and its cancelable dismissal."""

    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay
        self.current: Optional[CartNotification] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    def show(self, notification: CartNotification) -> None:
        """Show a notice, replacing the previous one and its pending dismissal."""
        self._cancel()
        self.current = notification

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; notice stays until replaced")
            return
        self._handle = loop.call_later(self.delay, self._expire, notification)

    def dismiss(self) -> None:
        self._cancel()
        self.current = None

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self, notification: CartNotification) -> None:
        # only the notice this timer was scheduled for
        if self.current is notification:
            self.current = None
            self._handle = None


class CartEngine:
    """Owns the cart lines, keyed by product id in first-add order."""

    def __init__(self, catalog: CatalogState, notifier: Optional[CartNotifier] = None) -> None:
        self.catalog = catalog
        self.notifier = notifier or CartNotifier()
        self._lines: dict[str, CartLine] = {}

    def add_item(self, product_id: str, quantity: int = 1) -> Optional[CartLine]:
        """
        Add a product to the cart, merging with an existing line.

        Args:
            product_id: ID of a product in the loaded catalog
            quantity: Quantity to add (at least 1)

        Returns:
            The resulting line, or None if the product is not in the catalog

        Raises:
            InvalidQuantityError: If quantity is not a whole number of at least 1
        """
        _check_whole_number(quantity)
        if quantity < 1:
            raise InvalidQuantityError(f"Quantity to add must be at least 1, got {quantity}")

        product = self.catalog.get_product(product_id)
        if product is None:
            logger.warning(f"Product {product_id} not found")
            return None

        self.notifier.show(
            CartNotification(
                product_id=product.id,
                name=product.name,
                image=product.first_image,
                quantity=quantity,
            )
        )

        existing = self._lines.get(product.id)
        if existing is not None:
            line = existing.model_copy(update={"quantity": existing.quantity + quantity})
        else:
            line = CartLine(
                id=product.id,
                name=product.name,
                price=product.price,
                price_value=product.price_value,
                image=product.first_image,
                quantity=quantity,
            )
        self._lines[product.id] = line
        logger.info(f"Added {product.id} x{quantity} (line quantity: {line.quantity})")
        return line

    def update_quantity(self, product_id: str, quantity: int) -> bool:
        """
        Set a line's quantity; 0 removes the line.

        Returns:
            True if a line was changed or removed, False if the product is not in the cart

        Raises:
            InvalidQuantityError: If quantity is negative or not a whole number
        """
        _check_whole_number(quantity)
        if quantity < 0:
            raise InvalidQuantityError(f"Quantity cannot be negative, got {quantity}")

        line = self._lines.get(product_id)
        if line is None:
            logger.warning(f"Product {product_id} not in cart")
            return False

        if quantity == 0:
            del self._lines[product_id]
            logger.info(f"Removed {product_id} from cart")
        else:
            self._lines[product_id] = line.model_copy(update={"quantity": quantity})
        return True

    def remove_item(self, product_id: str) -> bool:
        return self.update_quantity(product_id, 0)

    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def get_line(self, product_id: str) -> Optional[CartLine]:
        return self._lines.get(product_id)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self._lines.values())

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines.values()), Decimal("0"))

    def clear(self) -> None:
        self._lines = {}
