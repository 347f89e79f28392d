"""Exception hierarchy for checkout-core."""
from typing import Any, Optional


class CheckoutCoreError(Exception):
    """Base exception for all checkout-core errors."""

    pass


class ConfigValidationError(CheckoutCoreError):
    """
    Raised when configuration cannot be resolved or violates an invariant.

    Fatal: blocks initialization of anything that depends on the config.
    """

    def __init__(self, message: str, field: str, value: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.value = value

    def __repr__(self) -> str:
        return f"ConfigValidationError(field={self.field!r}, message={self.message!r})"


class ServiceConstructionError(CheckoutCoreError):
    """Raised by provider constructors on missing or invalid credentials."""

    def __init__(self, message: str, capability: Optional[str] = None):
        super().__init__(message)
        self.capability = capability


class UnsupportedProviderError(ServiceConstructionError):
    """Raised when a provider discriminator names no known implementation."""

    def __init__(self, capability: str, provider: str):
        super().__init__(f"Unsupported {capability} provider: {provider}", capability)
        self.provider = provider


class PaymentGatewayError(CheckoutCoreError):
    """Raised by the production payment engine when the gateway cannot be used."""

    pass


class WebhookError(CheckoutCoreError):
    """Raised when a webhook payload cannot be accepted."""

    pass
