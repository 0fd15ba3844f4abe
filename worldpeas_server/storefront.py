"""Application state container wiring the storefront components together."""

import asyncio
import logging
from typing import Optional

import httpx

from .auth import AuthManager
from .cart import CartEngine, CartNotifier
from .catalog import CatalogState
from .checkout import CheckoutPipeline, OrderOutbox, Step
from .config import Config
from .content import SiteContent
from .gateway import GatewayClient
from .identity import IdentityClient
from .models import Order, PageContent
from .storage import LocalStorage

logger = logging.getLogger(__name__)

PAGE_NAMES = ("newsstand", "about")


class Storefront:
    """
    Holds every piece of storefront state.

    One instance is shared by the MCP and HTTP surfaces; they mutate state
    only through the component operations.
    """

    def __init__(
        self,
        config: Config,
        gateway_transport: Optional[httpx.AsyncBaseTransport] = None,
        identity_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.storage = LocalStorage(config.storage_file)
        self.gateway = GatewayClient(config, transport=gateway_transport)
        self.identity_client = IdentityClient(config, transport=identity_transport)
        self.auth = AuthManager(self.storage, self.identity_client, self.gateway)
        self.catalog = CatalogState(self.gateway)
        self.cart = CartEngine(self.catalog, CartNotifier(config.notification_delay))
        self.content = SiteContent(self.gateway, self.storage)
        self.outbox = OrderOutbox(self.storage)
        self.pipeline = CheckoutPipeline(self.catalog, self.cart, self.gateway, self.outbox)

        # cached settings and pages are available before any network call
        self.content.hydrate()

    async def bootstrap(self) -> dict[str, bool]:
        """
        Run the startup loads concurrently.

        Each load writes its own piece of state and keeps the previous value
        on failure, so completion order does not matter.

        Returns:
            Success flag per load
        """
        names = ("products", "categories", "settings", "pages", "session")
        results = await asyncio.gather(
            self.catalog.load_products(),
            self.catalog.load_categories(),
            self.content.refresh_settings(),
            self.content.refresh_pages(),
            self.auth.check_login_status(),
        )
        status = dict(zip(names, results))
        logger.info(f"Bootstrap finished: {status}")
        return status

    async def login(self, email: str, password: str) -> bool:
        success = await self.auth.login(email, password)
        if success and self.pipeline.step in (Step.LOGIN, Step.SIGNUP):
            self.pipeline.back()
        return success

    async def signup(self, full_name: str, email: str, password: str, confirm_password: str) -> bool:
        success = await self.auth.signup(full_name, email, password, confirm_password)
        if success and self.pipeline.step in (Step.LOGIN, Step.SIGNUP):
            self.pipeline.back()
        return success

    def logout(self) -> None:
        self.auth.logout()

    def page(self, name: str) -> PageContent:
        """
        Get a static page by name.

        Raises:
            ValueError: If the page name is unknown
        """
        if name not in PAGE_NAMES:
            raise ValueError(f"Unknown page: {name}")
        return getattr(self.content.pages, name)

    async def retry_pending_orders(self) -> list[Order]:
        return await self.outbox.retry(self.gateway)

    async def close(self) -> None:
        await self.gateway.close()
        await self.identity_client.close()
