"""
Cross-field configuration validation.

Rules run in a fixed order and the first violation is raised. Aggregated
reporting lives in ``diagnostics.validate_production_config`` instead.
"""
import re
from typing import Any

from pydantic import AnyUrl, TypeAdapter, ValidationError

from ..errors import ConfigValidationError
from .models import (
    AppConfig,
    AuthConfig,
    CMSConfig,
    DatabaseConfig,
    EmailConfig,
    MonitoringConfig,
    OrderProgressionSettings,
    PaymentConfig,
    StorageConfig,
)
from .resolver import VALID_MODES

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_SECRET_LENGTH = 32
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_url_adapter = TypeAdapter(AnyUrl)


def is_valid_url(value: str) -> bool:
    try:
        _url_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


class ConfigValidator:
    """Fail-fast validator for a resolved ``AppConfig``."""

    @classmethod
    def validate(cls, config: AppConfig) -> None:
        """
        Validate every section of the configuration.

        Raises:
            ConfigValidationError: For the first rule that fails
        """
        cls.validate_mode(config)
        cls.validate_database(config.database)
        cls.validate_auth(config.auth)
        cls.validate_payment(config.payment)
        cls.validate_email(config.email)
        cls.validate_cms(config.cms)
        cls.validate_storage(config.storage)
        cls.validate_monitoring(config.monitoring)
        cls.validate_orders(config.orders)
        cls.validate_log_level(config.log_level)

    @staticmethod
    def validate_mode(config: AppConfig) -> None:
        if config.mode not in VALID_MODES:
            raise ConfigValidationError(
                f"Invalid app mode: {config.mode}. Must be 'demo' or 'production'",
                field="mode",
                value=config.mode,
            )

    @staticmethod
    def validate_database(database: DatabaseConfig) -> None:
        if not database.url:
            raise ConfigValidationError("Database URL is required", field="database.url")

        # file: URLs are paths for sqlite and need no host
        if database.url.startswith("file:"):
            return
        if not is_valid_url(database.url):
            raise ConfigValidationError(
                f"Invalid database URL format: {database.url}",
                field="database.url",
                value=database.url,
            )

    @staticmethod
    def validate_auth(auth: AuthConfig) -> None:
        if len(auth.jwt_secret) < MIN_SECRET_LENGTH:
            raise ConfigValidationError(
                f"JWT secret must be at least {MIN_SECRET_LENGTH} characters long",
                field="auth.jwt_secret",
            )

        if len(auth.nextauth_secret) < MIN_SECRET_LENGTH:
            raise ConfigValidationError(
                f"NextAuth secret must be at least {MIN_SECRET_LENGTH} characters long",
                field="auth.nextauth_secret",
            )

        if not is_valid_url(auth.nextauth_url):
            raise ConfigValidationError(
                f"Invalid NextAuth URL: {auth.nextauth_url}",
                field="auth.nextauth_url",
                value=auth.nextauth_url,
            )

    @staticmethod
    def validate_payment(payment: PaymentConfig) -> None:
        if payment.mode == "demo" and payment.demo is not None:
            rate = payment.demo.success_rate
            if rate < 0 or rate > 1:
                raise ConfigValidationError(
                    f"Demo success rate must be between 0 and 1, got: {rate}",
                    field="payment.demo.success_rate",
                    value=rate,
                )

            delay = payment.demo.processing_delay
            if delay < 0:
                raise ConfigValidationError(
                    f"Demo processing delay must be non-negative, got: {delay}",
                    field="payment.demo.processing_delay",
                    value=delay,
                )

        if payment.mode == "production":
            stripe = payment.stripe
            if stripe.publishable_key and not stripe.publishable_key.startswith("pk_"):
                raise ConfigValidationError(
                    'Stripe publishable key must start with "pk_"',
                    field="payment.stripe.publishable_key",
                )

            if stripe.secret_key and not stripe.secret_key.startswith("sk_"):
                raise ConfigValidationError(
                    'Stripe secret key must start with "sk_"',
                    field="payment.stripe.secret_key",
                )

    @staticmethod
    def validate_email(email: EmailConfig) -> None:
        if email.service == "sendgrid" and email.sendgrid is not None:
            if email.sendgrid.api_key and not email.sendgrid.api_key.startswith("SG."):
                raise ConfigValidationError(
                    'SendGrid API key must start with "SG."',
                    field="email.sendgrid.api_key",
                )

            from_email = email.sendgrid.from_email
            if from_email and not is_valid_email(from_email):
                raise ConfigValidationError(
                    f"Invalid SendGrid from email: {from_email}",
                    field="email.sendgrid.from_email",
                    value=from_email,
                )

        if email.service == "ses" and email.ses is not None:
            from_email = email.ses.from_email
            if from_email and not is_valid_email(from_email):
                raise ConfigValidationError(
                    f"Invalid SES from email: {from_email}",
                    field="email.ses.from_email",
                    value=from_email,
                )

    @staticmethod
    def validate_cms(cms: CMSConfig) -> None:
        if not cms.enabled:
            return

        if not cms.provider:
            raise ConfigValidationError(
                "CMS provider is required when CMS is enabled", field="cms.provider"
            )

        if not cms.endpoint:
            raise ConfigValidationError(
                "CMS endpoint is required when CMS is enabled", field="cms.endpoint"
            )

        if not is_valid_url(cms.endpoint):
            raise ConfigValidationError(
                f"Invalid CMS endpoint URL: {cms.endpoint}",
                field="cms.endpoint",
                value=cms.endpoint,
            )

    @staticmethod
    def validate_storage(storage: StorageConfig) -> None:
        if storage.provider == "cloudinary" and storage.cloudinary is not None:
            if not storage.cloudinary.cloud_name:
                raise ConfigValidationError(
                    "Cloudinary cloud name is required",
                    field="storage.cloudinary.cloud_name",
                )

        if storage.provider == "s3" and storage.s3 is not None:
            if not storage.s3.bucket:
                raise ConfigValidationError(
                    "S3 bucket name is required", field="storage.s3.bucket"
                )

    @staticmethod
    def validate_monitoring(monitoring: MonitoringConfig) -> None:
        dsn = monitoring.sentry.dsn
        if monitoring.enabled and dsn and not is_valid_url(dsn):
            raise ConfigValidationError(
                f"Invalid Sentry DSN URL: {dsn}",
                field="monitoring.sentry.dsn",
                value=dsn,
            )

    @staticmethod
    def validate_orders(orders: OrderProgressionSettings) -> None:
        if orders.advancement_delay_ms < 0:
            raise ConfigValidationError(
                f"Order advancement delay must be non-negative, got: {orders.advancement_delay_ms}",
                field="orders.advancement_delay_ms",
                value=orders.advancement_delay_ms,
            )

    @staticmethod
    def validate_log_level(level: Any) -> None:
        if level not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"Invalid log level. Must be one of: {list(VALID_LOG_LEVELS)}",
                field="log_level",
                value=level,
            )
