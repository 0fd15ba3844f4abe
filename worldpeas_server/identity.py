"""Client for the hosted identity provider."""

import logging
from typing import Any, Optional

import httpx

from .config import Config
from .errors import IdentityError

logger = logging.getLogger(__name__)


class IdentityClient:
    """Validates access tokens and exchanges credentials for tokens."""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client = httpx.AsyncClient(
            base_url=config.auth_url.rstrip("/"),
            transport=transport,
            headers={"apikey": config.api_key, "Accept": "application/json"},
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if not isinstance(body, dict):
            return f"HTTP {response.status_code}"
        return (
            body.get("error_description")
            or body.get("msg")
            or body.get("message")
            or body.get("error")
            or f"HTTP {response.status_code}"
        )

    async def get_user(self, token: str) -> dict[str, Any]:
        """
        Fetch the user owning an access token.

        Raises:
            IdentityError: If the token is invalid or the provider is unreachable
        """
        try:
            response = await self.client.get(
                "/auth/v1/user", headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            raise IdentityError(f"Identity provider unreachable: {e}") from e

        if response.status_code != 200:
            raise IdentityError(self._error_message(response))
        try:
            user = response.json()
        except ValueError as e:
            raise IdentityError("Malformed user response") from e
        if not isinstance(user, dict):
            raise IdentityError("Unexpected user response")
        return user

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """
        Exchange email and password for a session.

        Returns:
            Session payload containing access_token and user

        Raises:
            IdentityError: If the credentials are rejected or the provider is unreachable
        """
        try:
            response = await self.client.post(
                "/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except httpx.HTTPError as e:
            raise IdentityError(f"Identity provider unreachable: {e}") from e

        if response.status_code != 200:
            raise IdentityError(self._error_message(response))
        try:
            session = response.json()
        except ValueError as e:
            raise IdentityError("Malformed token response") from e
        if not isinstance(session, dict):
            raise IdentityError("Unexpected token response")
        if not session.get("access_token"):
            raise IdentityError("No access token in response")
        return session

    async def close(self) -> None:
        await self.client.aclose()
