"""On-device key/value storage persisted to a JSON file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

SITE_SETTINGS_KEY = "siteSettings"
PAGES_CONTENT_KEY = "pagesContent"
ACCESS_TOKEN_KEY = "worldpeas_access_token"
PENDING_ORDERS_KEY = "pendingOrders"


class LocalStorage:
    """String-valued key store mirrored to a single JSON file."""

    def __init__(self, storage_file: Optional[str] = None) -> None:
        """
        Initialize storage.

        Args:
            storage_file: Path to the storage file (default: ~/.worldpeas_storage.json)
        """
        if storage_file is None:
            storage_file = str(Path.home() / ".worldpeas_storage.json")
        self.storage_file = storage_file
        self._items: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        """Load items from file, treating a corrupt file as empty."""
        if not os.path.exists(self.storage_file):
            return {}
        try:
            with open(self.storage_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load storage from {self.storage_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring storage file with unexpected content: {self.storage_file}")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self) -> None:
        try:
            with open(self.storage_file, "w") as f:
                json.dump(self._items, f, indent=2, ensure_ascii=False)
            os.chmod(self.storage_file, 0o600)
        except OSError as e:
            logger.error(f"Could not save storage to {self.storage_file}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._save()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save()

    def get_json(self, key: str) -> Optional[Any]:
        """Read a JSON blob; a malformed blob reads as absent."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Error reading cached {key}: {e}")
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))
