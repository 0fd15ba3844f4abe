"""Exceptions raised by the storefront components."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront errors."""


class GatewayError(StorefrontError):
    """A gateway request failed (transport, non-2xx status or bad body)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class MalformedResponseError(GatewayError):
    """The gateway accepted the request but its response body could not be read."""


class IdentityError(StorefrontError):
    """The identity provider rejected a token or credentials, or was unreachable."""


class InvalidQuantityError(StorefrontError, ValueError):
    """Cart quantity outside the accepted range."""


class InvalidTransitionError(StorefrontError):
    """Checkout pipeline action not allowed from the current step."""

    def __init__(self, action: str, step: str) -> None:
        super().__init__(f"Cannot {action} from step '{step}'")
        self.action = action
        self.step = step


class IncompleteCustomerInfoError(StorefrontError, ValueError):
    """Customer info is missing one or more required fields."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing customer info: {', '.join(missing)}")
        self.missing = missing


class EmptyCartError(StorefrontError):
    """The cart has no lines."""


class SignupValidationError(StorefrontError, ValueError):
    """Signup form input was rejected before contacting the gateway."""
