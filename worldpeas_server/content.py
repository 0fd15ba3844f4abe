"""Site settings and static pages, read cache-first then from the gateway."""

import logging

from pydantic import ValidationError

from .errors import GatewayError
from .gateway import GatewayClient
from .models import PagesContent, SiteSettings
from .storage import PAGES_CONTENT_KEY, SITE_SETTINGS_KEY, LocalStorage

logger = logging.getLogger(__name__)


class SiteContent:
    """Two-phase site content: synchronous cache hydration, async refresh."""

    def __init__(self, gateway: GatewayClient, storage: LocalStorage) -> None:
        self.gateway = gateway
        self.storage = storage
        self.settings = SiteSettings()
        self.pages = PagesContent()

    def hydrate(self) -> None:
        """Load cached settings and pages, keeping defaults for anything unreadable."""
        cached_settings = self.storage.get_json(SITE_SETTINGS_KEY)
        if cached_settings is not None:
            try:
                self.settings = SiteSettings.model_validate(cached_settings)
            except ValidationError as e:
                logger.error(f"Error reading cached site settings: {e}")

        cached_pages = self.storage.get_json(PAGES_CONTENT_KEY)
        if cached_pages is not None:
            try:
                self.pages = PagesContent.model_validate(cached_pages)
            except ValidationError as e:
                logger.error(f"Error reading cached pages content: {e}")

    async def refresh_settings(self) -> bool:
        """Replace settings and their cache from the gateway; keep both on failure."""
        try:
            settings = await self.gateway.get_settings()
        except GatewayError as e:
            logger.error(f"Failed to load site settings: {e}")
            return False
        self.settings = settings
        self.storage.set_json(SITE_SETTINGS_KEY, settings.to_wire())
        return True

    async def refresh_pages(self) -> bool:
        """Replace pages and their cache from the gateway; keep both on failure."""
        try:
            pages = await self.gateway.get_pages()
        except GatewayError as e:
            logger.error(f"Failed to load pages content: {e}")
            return False
        self.pages = pages
        self.storage.set_json(PAGES_CONTENT_KEY, pages.to_wire())
        return True
