"""Tests for the checkout pipeline state machine and the order outbox."""

import asyncio
from decimal import Decimal

import pytest

from worldpeas_server.checkout import Step
from worldpeas_server.errors import (
    EmptyCartError,
    IncompleteCustomerInfoError,
    InvalidTransitionError,
)
from worldpeas_server.models import CustomerInfo, Order


@pytest.fixture
async def pipeline(loaded_storefront):
    return loaded_storefront.pipeline


async def walk_to_confirmation(pipeline, customer_info):
    pipeline.add_to_cart("1", 2)
    pipeline.add_to_cart("2", 1)
    pipeline.open_cart()
    pipeline.go_to_checkout()
    pipeline.proceed_to_payment(customer_info)
    pipeline.proceed_to_confirmation()


class TestForwardFlow:
    async def test_full_purchase(self, pipeline, customer_info, gateway_backend):
        product = pipeline.open_product("1")
        assert product.name == "Apple"
        assert pipeline.step == Step.DETAIL

        pipeline.add_to_cart(quantity=2)
        pipeline.open_cart()
        pipeline.go_to_checkout()
        pipeline.proceed_to_payment(customer_info)
        assert pipeline.step == Step.PAYMENT
        pipeline.proceed_to_confirmation()

        order = await pipeline.complete_purchase()

        assert pipeline.step == Step.ORDER_SUBMITTED
        assert pipeline.cart.is_empty
        assert pipeline.cart_count == 0
        assert order.id == "1000"
        assert order.status == "pending"
        assert pipeline.last_submission_ok is True

        submitted = gateway_backend.orders[0]
        assert submitted["customerInfo"]["zipCode"] == "650000"
        assert submitted["items"][0]["id"] == "1"
        assert submitted["items"][0]["quantity"] == 2
        assert submitted["total"] == 10.0

    async def test_customer_info_survives_until_continue_shopping(self, pipeline, customer_info):
        await walk_to_confirmation(pipeline, customer_info)
        await pipeline.complete_purchase()

        assert pipeline.customer_info == customer_info

        pipeline.continue_shopping()
        assert pipeline.step == Step.BROWSING
        assert pipeline.customer_info == CustomerInfo()

    async def test_unknown_product_does_not_move(self, pipeline):
        assert pipeline.open_product("404") is None
        assert pipeline.step == Step.BROWSING


class TestGuards:
    async def test_checkout_requires_items(self, pipeline):
        pipeline.open_cart()
        with pytest.raises(EmptyCartError):
            pipeline.go_to_checkout()
        assert pipeline.step == Step.CART

    async def test_payment_requires_complete_customer_info(self, pipeline, customer_info):
        pipeline.add_to_cart("1")
        pipeline.open_cart()
        pipeline.go_to_checkout()

        partial = customer_info.model_copy(update={"city": "", "country": "  "})
        with pytest.raises(IncompleteCustomerInfoError) as excinfo:
            pipeline.proceed_to_payment(partial)

        assert excinfo.value.missing == ["city", "country"]
        assert pipeline.step == Step.CHECKOUT
        assert pipeline.customer_info.address == "12 Orchard Lane"

    async def test_out_of_order_actions_are_rejected(self, pipeline):
        with pytest.raises(InvalidTransitionError):
            pipeline.proceed_to_confirmation()
        with pytest.raises(InvalidTransitionError):
            await pipeline.complete_purchase()
        with pytest.raises(InvalidTransitionError):
            pipeline.continue_shopping()
        with pytest.raises(InvalidTransitionError):
            pipeline.back()
        assert pipeline.step == Step.BROWSING

    async def test_quantity_edits_only_in_cart_and_confirmation(self, pipeline, customer_info):
        pipeline.add_to_cart("1", 3)
        with pytest.raises(InvalidTransitionError):
            pipeline.update_quantity("1", 1)

        await walk_to_confirmation(pipeline, customer_info)
        assert pipeline.update_quantity("1", 1) is True
        assert pipeline.cart.get_line("1").quantity == 1

    async def test_complete_purchase_with_emptied_cart(self, pipeline, customer_info):
        await walk_to_confirmation(pipeline, customer_info)
        pipeline.update_quantity("1", 0)
        pipeline.update_quantity("2", 0)

        with pytest.raises(EmptyCartError):
            await pipeline.complete_purchase()
        assert pipeline.step == Step.CONFIRMATION


class TestBackNavigation:
    async def test_back_is_non_destructive(self, pipeline, customer_info):
        await walk_to_confirmation(pipeline, customer_info)
        lines_before = pipeline.cart.lines()

        assert pipeline.back() == Step.PAYMENT
        assert pipeline.back() == Step.CHECKOUT
        assert pipeline.back() == Step.CART
        assert pipeline.back() == Step.BROWSING

        assert pipeline.cart.lines() == lines_before
        assert pipeline.customer_info == customer_info

        # forward again without re-entering data
        pipeline.open_cart()
        pipeline.go_to_checkout()
        pipeline.proceed_to_payment(pipeline.customer_info)
        assert pipeline.step == Step.PAYMENT

    async def test_back_from_detail_drops_selected_product(self, pipeline):
        pipeline.open_product("2")
        pipeline.back()

        assert pipeline.selected_product is None
        assert pipeline.step == Step.BROWSING

    async def test_no_back_from_order_submitted(self, pipeline, customer_info):
        await walk_to_confirmation(pipeline, customer_info)
        await pipeline.complete_purchase()

        with pytest.raises(InvalidTransitionError):
            pipeline.back()


class TestMenuNavigation:
    async def test_menu_screens_return_to_browsing(self, pipeline):
        pipeline.open_product("1")
        pipeline.navigate(Step.ABOUT)

        assert pipeline.selected_product is None
        assert pipeline.back() == Step.BROWSING

    async def test_menu_to_cart_keeps_checkout_data(self, pipeline, customer_info):
        await walk_to_confirmation(pipeline, customer_info)
        pipeline.navigate(Step.CART)

        assert pipeline.step == Step.CART
        assert pipeline.cart_count == 3
        assert pipeline.customer_info == customer_info

    async def test_pipeline_steps_are_not_menu_targets(self, pipeline):
        with pytest.raises(InvalidTransitionError):
            pipeline.navigate(Step.PAYMENT)


class TestSubmissionFailure:
    async def test_failed_submission_still_clears_cart_and_advances(
        self, pipeline, customer_info, gateway_backend
    ):
        gateway_backend.failing.add("/orders")
        await walk_to_confirmation(pipeline, customer_info)

        order = await pipeline.complete_purchase()

        assert pipeline.step == Step.ORDER_SUBMITTED
        assert pipeline.cart.is_empty
        assert pipeline.last_submission_ok is False
        assert order.id is None
        assert order.total == Decimal("13")

    async def test_failed_order_is_kept_and_retried(
        self, loaded_storefront, customer_info, gateway_backend
    ):
        pipeline = loaded_storefront.pipeline
        gateway_backend.offline = True
        await walk_to_confirmation(pipeline, customer_info)
        await pipeline.complete_purchase()
        gateway_backend.offline = False

        pending = loaded_storefront.outbox.pending()
        assert len(pending) == 1
        assert pending[0].order.customer_info == customer_info
        assert "network down" in pending[0].reason

        sent = await loaded_storefront.retry_pending_orders()

        assert [o.id for o in sent] == ["1000"]
        assert loaded_storefront.outbox.pending() == []
        assert gateway_backend.orders[0]["total"] == 13.0

    async def test_outbox_survives_restart(self, make_storefront, customer_info, gateway_backend):
        first = make_storefront()
        await first.bootstrap()
        gateway_backend.failing.add("/orders")
        await walk_to_confirmation(first.pipeline, customer_info)
        await first.pipeline.complete_purchase()

        second = make_storefront()
        assert len(second.outbox.pending()) == 1

        sent = await second.retry_pending_orders()
        assert sent == []
        assert len(second.outbox.pending()) == 1

    async def test_unreadable_reply_counts_as_sent(self, pipeline, customer_info, gateway_backend):
        gateway_backend.malformed.add("/orders")
        await walk_to_confirmation(pipeline, customer_info)

        order = await pipeline.complete_purchase()

        assert pipeline.last_submission_ok is True
        assert pipeline.outbox.pending() == []
        assert order.customer_info == customer_info
        assert len(gateway_backend.orders) == 1


def earlier_order() -> Order:
    return Order(customer_info=CustomerInfo(full_name="Earlier"), total=Decimal("4"))


class TestOutboxConcurrency:
    async def test_order_recorded_during_retry_is_kept(
        self, loaded_storefront, customer_info, gateway_backend, monkeypatch
    ):
        gateway = loaded_storefront.gateway
        outbox = loaded_storefront.outbox
        outbox.record(earlier_order(), "network down")

        release = asyncio.Event()
        create_order = gateway.create_order

        async def held_create_order(order):
            if order.customer_info.full_name == "Earlier":
                await release.wait()
            return await create_order(order)

        monkeypatch.setattr(gateway, "create_order", held_create_order)
        retry = asyncio.create_task(loaded_storefront.retry_pending_orders())
        await asyncio.sleep(0)

        # a purchase fails while the retry waits on the gateway
        gateway_backend.failing.add("/orders")
        await walk_to_confirmation(loaded_storefront.pipeline, customer_info)
        await loaded_storefront.pipeline.complete_purchase()
        assert [p.order.customer_info.full_name for p in outbox.pending()] == ["Earlier", "Ada Lovelace"]

        gateway_backend.failing.clear()
        release.set()
        sent = await retry

        assert [o.customer_info.full_name for o in sent] == ["Earlier"]
        assert [p.order.customer_info.full_name for p in outbox.pending()] == ["Ada Lovelace"]

    async def test_overlapping_retries_send_each_order_once(self, loaded_storefront, gateway_backend):
        loaded_storefront.outbox.record(earlier_order(), "network down")

        first, second = await asyncio.gather(
            loaded_storefront.retry_pending_orders(),
            loaded_storefront.retry_pending_orders(),
        )

        assert len(first) + len(second) == 1
        assert len(gateway_backend.orders) == 1
        assert loaded_storefront.outbox.pending() == []

    async def test_failed_retry_keeps_latest_reason(self, loaded_storefront, gateway_backend):
        outbox = loaded_storefront.outbox
        outbox.record(earlier_order(), "network down")
        gateway_backend.failing.add("/orders")

        assert await loaded_storefront.retry_pending_orders() == []

        pending = outbox.pending()
        assert len(pending) == 1
        assert pending[0].reason == "500: Failed to handle /orders"
