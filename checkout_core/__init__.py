"""
Checkout core.

Configuration, provider selection, payment engines and demo order
progression for an e-commerce checkout that runs either fully
simulated (demo mode) or against live providers (production mode).
"""
from .context import (
    AppContext,
    check_service_health,
    get_config,
    get_config_summary,
    get_context,
    get_email_service,
    get_payment_service,
    get_production_checklist,
    get_service_status,
    get_storage_service,
    is_demo_mode,
    is_development,
    is_production,
    is_production_mode,
    reset_config,
    reset_services,
    validate_production_config,
    validate_services,
)
from .errors import (
    CheckoutCoreError,
    ConfigValidationError,
    PaymentGatewayError,
    ServiceConstructionError,
    UnsupportedProviderError,
    WebhookError,
)

__version__ = "0.1.0"

__all__ = [
    "AppContext",
    "CheckoutCoreError",
    "ConfigValidationError",
    "PaymentGatewayError",
    "ServiceConstructionError",
    "UnsupportedProviderError",
    "WebhookError",
    "check_service_health",
    "get_config",
    "get_config_summary",
    "get_context",
    "get_email_service",
    "get_payment_service",
    "get_production_checklist",
    "get_service_status",
    "get_storage_service",
    "is_demo_mode",
    "is_development",
    "is_production",
    "is_production_mode",
    "reset_config",
    "reset_services",
    "validate_production_config",
    "validate_services",
]
