"""
Configuration resolver.

Turns raw environment variables into a typed ``AppConfig``:
- mode resolution (``PAYMENT_MODE``, default ``demo``)
- string/number/boolean parsing with loud failures for bad numbers
- requiredness that depends on mode and on provider discriminators
"""
import math
from typing import Mapping, Optional

import structlog

from ..errors import ConfigValidationError
from .environment import load_environment
from .models import (
    AnalyticsSettings,
    AppConfig,
    AuthConfig,
    CloudinarySettings,
    CMSConfig,
    DatabaseConfig,
    DemoEmailSettings,
    DemoPaymentSettings,
    EmailConfig,
    LocalStorageSettings,
    MonitoringConfig,
    OrderProgressionSettings,
    PaymentConfig,
    S3Settings,
    SentrySettings,
    SendGridSettings,
    SesSettings,
    StorageConfig,
    StripeSettings,
)

logger = structlog.get_logger(__name__)

VALID_MODES = ("demo", "production")


class ConfigResolver:
    """Parses an environment mapping into an ``AppConfig``."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        """
        Initialize resolver.

        Args:
            env: Explicit variable mapping. When omitted the process
                environment (and ``.env``) is read at resolve time.
        """
        self._explicit_env = env
        self._env: Mapping[str, str] = {}

    # Primitive readers

    def _raw(self, key: str) -> str:
        return self._env.get(key) or ""

    def required(self, key: str) -> str:
        value = self._raw(key)
        if not value:
            raise ConfigValidationError(
                f"Required environment variable {key} is not set", field=key
            )
        return value

    def optional(self, key: str, default: str = "") -> str:
        return self._raw(key) or default

    def boolean(self, key: str, default: bool = False) -> bool:
        value = self._raw(key)
        if not value:
            return default
        return value.lower() == "true" or value == "1"

    def number(self, key: str, default: float = 0) -> float:
        value = self._raw(key)
        if not value:
            return default
        try:
            parsed = float(value)
        except ValueError:
            parsed = math.nan
        if not math.isfinite(parsed):
            raise ConfigValidationError(
                f"Environment variable {key} must be a valid number, got: {value}",
                field=key,
                value=value,
            )
        return parsed

    def conditional(self, key: str, is_required: bool, default: str = "") -> str:
        return self.required(key) if is_required else self.optional(key, default)

    # Resolution

    def resolve(self) -> AppConfig:
        """
        Resolve the full configuration tree.

        Returns:
            AppConfig: Typed, frozen configuration

        Raises:
            ConfigValidationError: On the first unresolvable variable
        """
        self._env = self._explicit_env if self._explicit_env is not None else load_environment()

        mode = self.optional("PAYMENT_MODE", "demo")
        if mode not in VALID_MODES:
            raise ConfigValidationError(
                f"PAYMENT_MODE must be 'demo' or 'production', got: {mode}",
                field="PAYMENT_MODE",
                value=mode,
            )
        production = mode == "production"
        app_env = self.optional("APP_ENV", "development")
        site_url = self.optional("SITE_URL", "http://localhost:3000")

        config = AppConfig(
            mode=mode,
            app_env=app_env,
            site_url=site_url,
            site_name=self.optional("SITE_NAME", "Kin Workspace"),
            log_level=self.optional("LOG_LEVEL", "INFO").upper(),
            database=self._database(),
            auth=AuthConfig(
                jwt_secret=self.required("JWT_SECRET"),
                nextauth_secret=self.required("NEXTAUTH_SECRET"),
                nextauth_url=self.required("NEXTAUTH_URL"),
            ),
            payment=self._payment(mode),
            email=self._email(mode),
            cms=CMSConfig(
                enabled=self.boolean("CMS_ENABLED", False),
                provider=self.optional("CMS_PROVIDER") or None,
                endpoint=self.optional("CMS_ENDPOINT") or None,
                api_key=self.optional("CMS_API_KEY") or None,
                project_id=self.optional("CMS_PROJECT_ID") or None,
                fallback_to_local=self.boolean("CMS_FALLBACK_TO_LOCAL", True),
            ),
            storage=self._storage(mode),
            monitoring=MonitoringConfig(
                enabled=production and self.boolean("MONITORING_ENABLED", True),
                sentry=SentrySettings(dsn=self.optional("SENTRY_DSN"), environment=mode),
                analytics=AnalyticsSettings(
                    google_analytics_id=self.optional("GOOGLE_ANALYTICS_ID")
                ),
            ),
            orders=OrderProgressionSettings(
                auto_advance_enabled=self.boolean(
                    "DEMO_AUTO_ADVANCE_ORDERS", app_env == "development"
                ),
                advancement_delay_ms=self.number("DEMO_ORDER_ADVANCE_DELAY", 30000),
                api_url=self.optional("ORDER_API_URL", site_url),
            ),
        )

        logger.debug("config_resolved", mode=config.mode, app_env=config.app_env)
        return config

    def _database(self) -> DatabaseConfig:
        url = self.required("DATABASE_URL")
        pool_size = self.number("DATABASE_POOL_SIZE", 0)
        return DatabaseConfig(
            url=url,
            provider=determine_database_provider(url),
            pool_size=int(pool_size) if pool_size else None,
        )

    def _payment(self, mode: str) -> PaymentConfig:
        production = mode == "production"
        demo = None
        if mode == "demo":
            demo = DemoPaymentSettings(
                success_rate=self.number("DEMO_SUCCESS_RATE", 0.8),
                processing_delay=self.number("DEMO_PROCESSING_DELAY", 2000),
                enable_failure_simulation=self.boolean("DEMO_ENABLE_FAILURES", True),
            )
        return PaymentConfig(
            mode=mode,
            demo=demo,
            stripe=StripeSettings(
                publishable_key=self.conditional("STRIPE_PUBLISHABLE_KEY", production),
                secret_key=self.conditional("STRIPE_SECRET_KEY", production),
                webhook_secret=self.conditional("STRIPE_WEBHOOK_SECRET", production),
                api_version=self.optional("STRIPE_API_VERSION", "2023-10-16"),
            ),
        )

    def _email(self, mode: str) -> EmailConfig:
        production = mode == "production"
        service = self.optional("EMAIL_SERVICE", "demo" if mode == "demo" else "sendgrid")

        demo = sendgrid = ses = None
        if service == "demo":
            demo = DemoEmailSettings(
                log_emails=self.boolean("DEMO_LOG_EMAILS", True),
                simulate_delay=self.number("DEMO_EMAIL_DELAY", 1000),
            )
        elif service == "sendgrid":
            needed = production
            sendgrid = SendGridSettings(
                api_key=self.conditional("SENDGRID_API_KEY", needed),
                from_email=self.conditional("SENDGRID_FROM_EMAIL", needed),
                from_name=self.optional("SENDGRID_FROM_NAME", "Kin Workspace"),
            )
        elif service == "ses":
            needed = production
            ses = SesSettings(
                region=self.conditional("AWS_REGION", needed),
                access_key_id=self.conditional("AWS_ACCESS_KEY_ID", needed),
                secret_access_key=self.conditional("AWS_SECRET_ACCESS_KEY", needed),
                from_email=self.conditional("SES_FROM_EMAIL", needed),
            )
        return EmailConfig(service=service, demo=demo, sendgrid=sendgrid, ses=ses)

    def _storage(self, mode: str) -> StorageConfig:
        production = mode == "production"
        provider = self.optional("STORAGE_PROVIDER", "local" if mode == "demo" else "cloudinary")

        local = cloudinary = s3 = None
        if provider == "local":
            local = LocalStorageSettings(
                upload_dir=self.optional("LOCAL_UPLOAD_DIR", "./public/uploads"),
                public_path=self.optional("LOCAL_PUBLIC_PATH", "/uploads"),
            )
        elif provider == "cloudinary":
            cloudinary = CloudinarySettings(
                cloud_name=self.conditional("CLOUDINARY_CLOUD_NAME", production),
                api_key=self.conditional("CLOUDINARY_API_KEY", production),
                api_secret=self.conditional("CLOUDINARY_API_SECRET", production),
            )
        elif provider == "s3":
            s3 = S3Settings(
                bucket=self.conditional("S3_BUCKET", production),
                region=self.conditional("AWS_REGION", production, "us-east-1"),
                access_key_id=self.conditional("AWS_ACCESS_KEY_ID", production),
                secret_access_key=self.conditional("AWS_SECRET_ACCESS_KEY", production),
            )
        return StorageConfig(provider=provider, local=local, cloudinary=cloudinary, s3=s3)


def determine_database_provider(url: str) -> str:
    """Infer the database provider from its connection URL."""
    if url.startswith("postgresql://") or url.startswith("postgres://"):
        return "postgresql"
    if url.startswith("mysql://"):
        return "mysql"
    return "sqlite"
