"""
Operational diagnostics over the configuration.

Provides:
- Redacted configuration summary for status pages
- Aggregated production readiness report (never raises)
- Deployment checklist computed straight from the environment
- Environment presets for demo and production deployments
"""
import platform
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel, Field

from .environment import load_environment
from .models import AppConfig

logger = structlog.get_logger(__name__)

REQUIRED_PRODUCTION_VARS = (
    "DATABASE_URL",
    "JWT_SECRET",
    "NEXTAUTH_SECRET",
    "STRIPE_SECRET_KEY",
    "STRIPE_PUBLISHABLE_KEY",
)

OPTIONAL_PRODUCTION_VARS = (
    "CMS_ENDPOINT",
    "CMS_API_KEY",
    "SENDGRID_API_KEY",
    "CLOUDINARY_CLOUD_NAME",
    "SENTRY_DSN",
)

CONFIG_PRESETS: Dict[str, Dict[str, str]] = {
    "demo": {
        "PAYMENT_MODE": "demo",
        "EMAIL_SERVICE": "demo",
        "STORAGE_PROVIDER": "local",
        "CMS_ENABLED": "false",
        "MONITORING_ENABLED": "false",
        "DEMO_SUCCESS_RATE": "0.8",
        "DEMO_PROCESSING_DELAY": "2000",
        "DEMO_ENABLE_FAILURES": "true",
    },
    "production": {
        "PAYMENT_MODE": "production",
        "EMAIL_SERVICE": "sendgrid",
        "STORAGE_PROVIDER": "cloudinary",
        "CMS_ENABLED": "true",
        "MONITORING_ENABLED": "true",
    },
}


class ProductionConfigReport(BaseModel):
    """Aggregated result of the production readiness check."""

    is_valid: bool = Field(..., description="True when no required variable is missing")
    missing_vars: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def get_config_summary(config: AppConfig) -> Dict[str, Any]:
    """
    Build a redacted summary of the configuration.

    Secrets are omitted entirely; only flags and non-secret values are
    reported. A fresh dictionary is built on every call.

    Args:
        config: Resolved configuration

    Returns:
        Dict[str, Any]: Summary safe to expose on status endpoints
    """
    email = config.email
    storage = config.storage
    return {
        "mode": config.mode,
        "app_env": config.app_env,
        "site_url": config.site_url,
        "site_name": config.site_name,
        "database": {
            "provider": config.database.provider,
            "has_url": bool(config.database.url),
        },
        "payment": {
            "mode": config.payment.mode,
            "has_demo_config": config.payment.demo is not None,
            "has_stripe_config": bool(config.payment.stripe.publishable_key),
        },
        "email": {
            "service": email.service,
            "has_config": bool(
                (email.sendgrid and email.sendgrid.api_key)
                or (email.ses and email.ses.access_key_id)
                or email.demo
            ),
        },
        "cms": {
            "enabled": config.cms.enabled,
            "provider": config.cms.provider,
            "has_endpoint": bool(config.cms.endpoint),
        },
        "storage": {
            "provider": storage.provider,
            "has_config": bool(
                storage.local
                or (storage.cloudinary and storage.cloudinary.cloud_name)
                or (storage.s3 and storage.s3.bucket)
            ),
        },
        "monitoring": {
            "enabled": config.monitoring.enabled,
            "has_sentry": bool(config.monitoring.sentry.dsn),
            "has_analytics": bool(config.monitoring.analytics.google_analytics_id),
        },
        "orders": {
            "auto_advance_enabled": config.orders.auto_advance_enabled,
            "advancement_delay_ms": config.orders.advancement_delay_ms,
        },
    }


def validate_production_config(
    env: Optional[Mapping[str, str]] = None,
) -> ProductionConfigReport:
    """
    Check the environment for production readiness.

    Unlike ``ConfigValidator`` this collects every problem instead of
    stopping at the first one.

    Args:
        env: Variable mapping (process environment when omitted)

    Returns:
        ProductionConfigReport: Missing required variables and warnings
    """
    values = env if env is not None else load_environment()

    missing = [name for name in REQUIRED_PRODUCTION_VARS if not values.get(name)]
    warnings = [
        f"Optional environment variable {name} is not set"
        for name in OPTIONAL_PRODUCTION_VARS
        if not values.get(name)
    ]

    if missing:
        logger.warning("production_config_incomplete", missing_vars=missing)

    return ProductionConfigReport(
        is_valid=not missing, missing_vars=missing, warnings=warnings
    )


def _flag(values: Mapping[str, str], key: str) -> bool:
    value = values.get(key) or ""
    return value.lower() == "true" or value == "1"


def get_production_checklist(
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, Dict[str, Any]]:
    """
    Snapshot of deployment readiness flags.

    Computed from raw variables so it works even when the configuration
    would fail to resolve.

    Args:
        env: Variable mapping (process environment when omitted)

    Returns:
        Dict[str, Dict[str, Any]]: Flags grouped by concern
    """
    values = env if env is not None else load_environment()

    site_url = values.get("SITE_URL") or ""
    https_enabled = site_url.startswith("https://")
    storage_provider = values.get("STORAGE_PROVIDER") or ""

    return {
        "environment": {
            "python_version": platform.python_version(),
            "production_mode": values.get("APP_ENV") == "production",
        },
        "security": {
            "https_enabled": https_enabled,
            "secrets_configured": bool(values.get("STRIPE_SECRET_KEY")),
            "cors_configured": bool(values.get("ALLOWED_ORIGINS")) or https_enabled,
            "rate_limiting_enabled": _flag(values, "RATE_LIMIT_ENABLED"),
        },
        "database": {
            "connection_pool_configured": bool(values.get("DATABASE_POOL_SIZE")),
            "backup_configured": _flag(values, "DATABASE_BACKUP_ENABLED"),
        },
        "monitoring": {
            "error_tracking_enabled": bool(values.get("SENTRY_DSN")),
            "performance_monitoring_enabled": bool(values.get("GOOGLE_ANALYTICS_ID")),
            "health_checks_configured": True,
        },
        "integrations": {
            "payment_service_ready": bool(values.get("STRIPE_SECRET_KEY")),
            "cms_service_ready": bool(values.get("CMS_ENDPOINT"))
            or values.get("CMS_FALLBACK_TO_LOCAL", "true").lower() != "false",
            "email_service_ready": bool(
                values.get("SENDGRID_API_KEY") or values.get("SES_FROM_EMAIL")
            ),
            "file_storage_ready": bool(
                values.get("CLOUDINARY_CLOUD_NAME") or values.get("S3_BUCKET")
            )
            or storage_provider == "local",
        },
    }
