"""Payment engines and shared card validation."""
from .base import PaymentService
from .demo import DemoPaymentService
from .factory import PaymentServiceFactory
from .models import (
    PaymentIntent,
    PaymentMethod,
    PaymentMethodValidation,
    PaymentReceipt,
    PaymentResult,
)
from .production import StripePaymentService, validate_stripe_config

__all__ = [
    "DemoPaymentService",
    "PaymentIntent",
    "PaymentMethod",
    "PaymentMethodValidation",
    "PaymentReceipt",
    "PaymentResult",
    "PaymentService",
    "PaymentServiceFactory",
    "StripePaymentService",
    "validate_stripe_config",
]
