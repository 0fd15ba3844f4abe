"""Runtime configuration loaded from the environment."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import AuthCredentials

PROJECT_ID = "worldpeas"
DEFAULT_API_URL = f"https://{PROJECT_ID}.supabase.co/functions/v1/make-server-e9343d87"
DEFAULT_AUTH_URL = f"https://{PROJECT_ID}.supabase.co"


class Config(BaseModel):
    """Settings shared by the MCP server, the HTTP server and the CLI."""

    api_url: str = Field(default=DEFAULT_API_URL, description="Gateway base URL")
    auth_url: str = Field(default=DEFAULT_AUTH_URL, description="Identity provider base URL")
    api_key: str = Field(default="", description="Public bearer credential")
    storage_file: str = Field(
        default_factory=lambda: str(Path.home() / ".worldpeas_storage.json"),
        description="On-device storage file",
    )
    notification_delay: float = Field(default=1.0, ge=0, description="Seconds before the add-to-cart notice hides")
    log_level: str = "INFO"
    credentials: Optional[AuthCredentials] = None

    @classmethod
    def from_env(cls) -> "Config":
        """Build configuration from WORLDPEAS_* environment variables."""
        values: dict = {}
        env_map = {
            "WORLDPEAS_API_URL": "api_url",
            "WORLDPEAS_AUTH_URL": "auth_url",
            "WORLDPEAS_API_KEY": "api_key",
            "WORLDPEAS_STORAGE_FILE": "storage_file",
            "WORLDPEAS_NOTIFICATION_DELAY": "notification_delay",
            "WORLDPEAS_LOG_LEVEL": "log_level",
        }
        for env_name, field_name in env_map.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value

        email = os.environ.get("WORLDPEAS_EMAIL")
        password = os.environ.get("WORLDPEAS_PASSWORD")
        if email and password:
            values["credentials"] = AuthCredentials(email=email, password=password)

        return cls(**values)
