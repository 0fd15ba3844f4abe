"""Checkout pipeline state machine and the outbox for unsent orders."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from .cart import CartEngine
from .catalog import CatalogState
from .errors import (
    EmptyCartError,
    GatewayError,
    IncompleteCustomerInfoError,
    InvalidTransitionError,
    MalformedResponseError,
)
from .gateway import GatewayClient
from .models import CartLine, CustomerInfo, Order, PendingOrder, Product
from .storage import PENDING_ORDERS_KEY, LocalStorage

logger = logging.getLogger(__name__)


class Step(str, Enum):
    BROWSING = "browsing"
    DETAIL = "detail"
    CART = "cart"
    CHECKOUT = "checkout"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"
    ORDER_SUBMITTED = "order_submitted"
    # menu screens outside the purchase flow
    NEWSSTAND = "newsstand"
    ABOUT = "about"
    PROFILE = "profile"
    LOGIN = "login"
    SIGNUP = "signup"


MENU_SCREENS = frozenset({Step.NEWSSTAND, Step.ABOUT, Step.PROFILE, Step.LOGIN, Step.SIGNUP})
MENU_TARGETS = MENU_SCREENS | {Step.BROWSING, Step.CART}

BACK_TARGETS: dict[Step, Step] = {
    Step.DETAIL: Step.BROWSING,
    Step.CART: Step.BROWSING,
    Step.CHECKOUT: Step.CART,
    Step.PAYMENT: Step.CHECKOUT,
    Step.CONFIRMATION: Step.PAYMENT,
    **{screen: Step.BROWSING for screen in MENU_SCREENS},
}

_pending_list = TypeAdapter(list[PendingOrder])


class OrderOutbox:
    """Durable list of orders whose submission failed."""

    def __init__(self, storage: LocalStorage) -> None:
        self.storage = storage
        self._retry_lock = asyncio.Lock()

    def pending(self) -> list[PendingOrder]:
        data = self.storage.get_json(PENDING_ORDERS_KEY)
        if data is None:
            return []
        try:
            return _pending_list.validate_python(data)
        except ValidationError as e:
            logger.error(f"Error reading pending orders: {e}")
            return []

    def _save(self, pending: list[PendingOrder]) -> None:
        if pending:
            data = _pending_list.dump_python(pending, mode="json", by_alias=True)
            self.storage.set_json(PENDING_ORDERS_KEY, data)
        else:
            self.storage.remove_item(PENDING_ORDERS_KEY)

    def record(self, order: Order, reason: str) -> PendingOrder:
        entry = PendingOrder(order=order, failed_at=datetime.now(timezone.utc), reason=reason)
        self._save([*self.pending(), entry])
        logger.warning(f"Order for {order.customer_info.full_name} kept for retry ({reason})")
        return entry

    async def retry(self, gateway: GatewayClient) -> list[Order]:
        """
        Resubmit pending orders, keeping the ones that fail again.

        Retries run one at a time. Orders recorded while a retry is awaiting
        the gateway stay in the outbox for the next attempt.

        Returns:
            Orders accepted by the gateway on this attempt
        """
        async with self._retry_lock:
            sent: list[Order] = []
            sent_keys: set[str] = set()
            failures: dict[str, str] = {}
            for entry in self.pending():
                try:
                    sent.append(await gateway.create_order(entry.order))
                except MalformedResponseError as e:
                    # stored by the gateway, only the reply was unreadable
                    logger.warning(f"Pending order accepted with unreadable response: {e}")
                    sent.append(entry.order)
                except GatewayError as e:
                    logger.error(f"Retry failed for pending order: {e}")
                    failures[entry.key] = str(e)
                    continue
                sent_keys.add(entry.key)

            still_pending = [
                entry.model_copy(update={"reason": failures[entry.key]})
                if entry.key in failures
                else entry
                for entry in self.pending()
                if entry.key not in sent_keys
            ]
            self._save(still_pending)

        logger.info(f"Resubmitted {len(sent)} order(s), {len(still_pending)} still pending")
        return sent


class CheckoutPipeline:
    """
    Navigation and checkout state machine.

    Steps move only through the action methods below. Backward moves never
    touch the cart or the entered customer info. The pipeline owns the
    customer info and the order under submission; it reads the catalog and
    drives the cart through its public operations.
    """

    def __init__(
        self,
        catalog: CatalogState,
        cart: CartEngine,
        gateway: GatewayClient,
        outbox: OrderOutbox,
    ) -> None:
        self.catalog = catalog
        self.cart = cart
        self.gateway = gateway
        self.outbox = outbox
        self.step = Step.BROWSING
        self.selected_product: Optional[Product] = None
        self.customer_info = CustomerInfo()
        self.last_order: Optional[Order] = None
        self.last_submission_ok: Optional[bool] = None
        self._submitting = False

    @property
    def cart_count(self) -> int:
        return self.cart.count()

    def _require(self, action: str, *steps: Step) -> None:
        if self._submitting:
            raise InvalidTransitionError(action, "submitting order")
        if self.step not in steps:
            raise InvalidTransitionError(action, self.step.value)

    def _move(self, step: Step) -> None:
        logger.debug(f"Step {self.step.value} -> {step.value}")
        self.step = step

    def open_product(self, product_id: str) -> Optional[Product]:
        self._require("open product", Step.BROWSING)
        product = self.catalog.get_product(product_id)
        if product is None:
            logger.warning(f"Product {product_id} not found")
            return None
        self.selected_product = product
        self._move(Step.DETAIL)
        return product

    def add_to_cart(self, product_id: Optional[str] = None, quantity: int = 1) -> Optional[CartLine]:
        """Add from the product list, or the selected product from the detail view."""
        self._require("add to cart", Step.BROWSING, Step.DETAIL)
        if product_id is None and self.step == Step.DETAIL and self.selected_product is not None:
            product_id = self.selected_product.id
        if product_id is None:
            raise ValueError("product_id is required outside the detail view")
        return self.cart.add_item(product_id, quantity)

    def update_quantity(self, product_id: str, quantity: int) -> bool:
        self._require("update quantity", Step.CART, Step.CONFIRMATION)
        return self.cart.update_quantity(product_id, quantity)

    def open_cart(self) -> None:
        self._require("open cart", Step.BROWSING, Step.DETAIL, *MENU_SCREENS)
        self._move(Step.CART)

    def go_to_checkout(self) -> None:
        self._require("go to checkout", Step.CART)
        if self.cart.is_empty:
            raise EmptyCartError("Cannot check out an empty cart")
        self._move(Step.CHECKOUT)

    def proceed_to_payment(self, customer_info: CustomerInfo) -> None:
        """
        Store the customer info and move on to payment.

        Raises:
            IncompleteCustomerInfoError: If any of the six fields is blank;
                the entered values are kept so the form can be completed
        """
        self._require("proceed to payment", Step.CHECKOUT)
        self.customer_info = customer_info
        missing = customer_info.missing_fields()
        if missing:
            raise IncompleteCustomerInfoError(missing)
        self._move(Step.PAYMENT)

    def proceed_to_confirmation(self) -> None:
        self._require("proceed to confirmation", Step.PAYMENT)
        self._move(Step.CONFIRMATION)

    async def complete_purchase(self) -> Order:
        """
        Submit the order, then clear the cart and advance whatever the outcome.

        A failed submission is written to the outbox for a later retry
        instead of being lost.

        Returns:
            The stored order on success, otherwise the order as assembled locally
        """
        self._require("complete purchase", Step.CONFIRMATION)
        if self.cart.is_empty:
            raise EmptyCartError("Cannot complete a purchase with an empty cart")

        order = Order(
            customer_info=self.customer_info.model_copy(),
            items=self.cart.lines(),
            total=self.cart.total(),
        )

        self._submitting = True
        try:
            order = await self.gateway.create_order(order)
            self.last_submission_ok = True
            logger.info(f"Order {order.id} saved successfully")
        except MalformedResponseError as e:
            # the gateway stored the order; keep the local copy
            logger.warning(f"Order saved but the response was unreadable: {e}")
            self.last_submission_ok = True
        except GatewayError as e:
            logger.error(f"Failed to save order: {e}")
            self.outbox.record(order, str(e))
            self.last_submission_ok = False
        finally:
            self._submitting = False

        self.last_order = order
        self.cart.clear()
        self._move(Step.ORDER_SUBMITTED)
        return order

    def continue_shopping(self) -> None:
        """Start over from the product list with empty customer info."""
        self._require("continue shopping", Step.ORDER_SUBMITTED)
        self.selected_product = None
        self.customer_info = CustomerInfo()
        self._move(Step.BROWSING)

    def back(self) -> Step:
        target = BACK_TARGETS.get(self.step)
        if target is None or self._submitting:
            raise InvalidTransitionError("go back", self.step.value)
        if self.step == Step.DETAIL:
            self.selected_product = None
        self._move(target)
        return target

    def navigate(self, screen: Step) -> None:
        """Jump to a menu destination."""
        if self._submitting:
            raise InvalidTransitionError("navigate", "submitting order")
        if screen not in MENU_TARGETS:
            raise InvalidTransitionError(f"navigate to {screen.value}", self.step.value)
        self.selected_product = None
        self._move(screen)
