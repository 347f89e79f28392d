"""
Typed configuration tree.

Every section is a frozen pydantic model, so consumers receive read-only
snapshots. Provider discriminators are plain strings: the service factory,
not the resolver, decides whether a provider is supported.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

AppMode = Literal["demo", "production"]


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class DatabaseConfig(_Section):
    url: str
    provider: Literal["sqlite", "postgresql", "mysql"]
    pool_size: Optional[int] = None


class AuthConfig(_Section):
    jwt_secret: str
    nextauth_secret: str
    nextauth_url: str


class DemoPaymentSettings(_Section):
    success_rate: float = 0.8
    processing_delay: float = 2000
    enable_failure_simulation: bool = True


class StripeSettings(_Section):
    publishable_key: str = ""
    secret_key: str = ""
    webhook_secret: str = ""
    api_version: str = "2023-10-16"


class PaymentConfig(_Section):
    mode: AppMode
    demo: Optional[DemoPaymentSettings] = None
    stripe: StripeSettings = StripeSettings()


class DemoEmailSettings(_Section):
    log_emails: bool = True
    simulate_delay: float = 1000


class SendGridSettings(_Section):
    api_key: str = ""
    from_email: str = ""
    from_name: str = "Kin Workspace"


class SesSettings(_Section):
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    from_email: str = ""


class EmailConfig(_Section):
    service: str
    demo: Optional[DemoEmailSettings] = None
    sendgrid: Optional[SendGridSettings] = None
    ses: Optional[SesSettings] = None


class CMSConfig(_Section):
    enabled: bool = False
    provider: Optional[str] = None
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    project_id: Optional[str] = None
    fallback_to_local: bool = True


class LocalStorageSettings(_Section):
    upload_dir: str = "./public/uploads"
    public_path: str = "/uploads"


class CloudinarySettings(_Section):
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""


class S3Settings(_Section):
    bucket: str = ""
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""


class StorageConfig(_Section):
    provider: str
    local: Optional[LocalStorageSettings] = None
    cloudinary: Optional[CloudinarySettings] = None
    s3: Optional[S3Settings] = None


class SentrySettings(_Section):
    dsn: str = ""
    environment: str = "demo"


class AnalyticsSettings(_Section):
    google_analytics_id: str = ""


class MonitoringConfig(_Section):
    enabled: bool = False
    sentry: SentrySettings = SentrySettings()
    analytics: AnalyticsSettings = AnalyticsSettings()


class OrderProgressionSettings(_Section):
    """Demo-only order auto-advancement."""

    auto_advance_enabled: bool = False
    advancement_delay_ms: float = 30000
    api_url: str = "http://localhost:3000"


class AppConfig(_Section):
    """Root of the resolved configuration tree."""

    mode: AppMode
    app_env: str = "development"
    site_url: str = "http://localhost:3000"
    site_name: str = "Kin Workspace"
    log_level: str = "INFO"
    database: DatabaseConfig
    auth: AuthConfig
    payment: PaymentConfig
    email: EmailConfig
    cms: CMSConfig
    storage: StorageConfig
    monitoring: MonitoringConfig
    orders: OrderProgressionSettings = OrderProgressionSettings()

    @property
    def is_demo(self) -> bool:
        return self.mode == "demo"

    @property
    def is_production(self) -> bool:
        return self.mode == "production"
