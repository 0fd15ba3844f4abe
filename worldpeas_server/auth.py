"""Session store: holds and invalidates the access token."""

import logging
from typing import Optional

from .errors import GatewayError, IdentityError, SignupValidationError
from .gateway import GatewayClient
from .identity import IdentityClient
from .models import SessionIdentity
from .storage import ACCESS_TOKEN_KEY, LocalStorage

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthManager:
    """Manages authentication state and token persistence."""

    def __init__(
        self,
        storage: LocalStorage,
        identity_client: IdentityClient,
        gateway: GatewayClient,
    ) -> None:
        """
        Initialize the auth manager.

        Args:
            storage: On-device storage holding the access token
            identity_client: Identity provider used to validate tokens and sign in
            gateway: Gateway used for account signup
        """
        self.storage = storage
        self.identity_client = identity_client
        self.gateway = gateway
        self.identity: Optional[SessionIdentity] = None
        self.last_error: Optional[str] = None

    @property
    def token(self) -> Optional[str]:
        return self.storage.get_item(ACCESS_TOKEN_KEY)

    def is_authenticated(self) -> bool:
        """Check if there's a validated session."""
        return self.identity is not None

    async def check_login_status(self) -> bool:
        """
        Validate the stored token against the identity provider.

        An invalid token, or a failed validation, removes the token from
        storage and reports logged-out.
        """
        token = self.token
        if not token:
            self.identity = None
            return False

        try:
            user = await self.identity_client.get_user(token)
        except IdentityError as e:
            logger.warning(f"Stored token rejected, clearing session: {e}")
            self.storage.remove_item(ACCESS_TOKEN_KEY)
            self.identity = None
            return False

        self.identity = SessionIdentity.from_user(user)
        logger.info(f"Session restored for {self.identity.email}")
        return True

    async def login(self, email: str, password: str) -> bool:
        """
        Sign in and store the new access token.

        A failed login keeps any existing session untouched.

        Returns:
            True if login successful, False otherwise (see last_error)
        """
        email = email.strip()
        logger.info(f"Attempting login for {email}")
        self.last_error = None

        try:
            session = await self.identity_client.sign_in_with_password(email, password)
        except IdentityError as e:
            logger.error(f"Login failed for {email}: {e}")
            self.last_error = str(e)
            return False

        token = session["access_token"]
        user = session.get("user")
        if not isinstance(user, dict) or not user:
            try:
                user = await self.identity_client.get_user(token)
            except IdentityError as e:
                logger.error(f"Login failed for {email}, new token not usable: {e}")
                self.last_error = str(e)
                return False

        self.storage.set_item(ACCESS_TOKEN_KEY, token)
        self.identity = SessionIdentity.from_user(user)
        logger.info(f"✓ Logged in as {email}")
        return True

    async def signup(self, full_name: str, email: str, password: str, confirm_password: str) -> bool:
        """
        Create an account and sign in with it.

        Raises:
            SignupValidationError: If the passwords differ or are too short
        """
        if password != confirm_password:
            raise SignupValidationError("Passwords do not match")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise SignupValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        email = email.strip()
        self.last_error = None
        try:
            await self.gateway.signup(email, password, full_name.strip())
        except GatewayError as e:
            logger.error(f"Signup failed for {email}: {e}")
            self.last_error = e.message
            return False

        logger.info(f"Account created for {email}, signing in")
        if not await self.login(email, password):
            self.last_error = "Account created but sign-in failed, please log in manually"
            return False
        return True

    def logout(self) -> None:
        """Clear the token and identity."""
        self.storage.remove_item(ACCESS_TOKEN_KEY)
        self.identity = None
        self.last_error = None
        logger.info("Session cleared")
