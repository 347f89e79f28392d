"""Raw environment loading using pydantic-settings."""
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentSettings(BaseSettings):
    """
    Snapshot of every environment variable the checkout core understands.

    Values are kept as raw strings; typing, defaults and requiredness are
    applied by ``ConfigResolver`` so errors can name the offending variable.
    """

    # Mode and application
    payment_mode: Optional[str] = Field(default=None, description="demo or production")
    app_env: Optional[str] = Field(default=None, description="development/production/test")
    log_level: Optional[str] = Field(default=None, description="Logging level")
    site_url: Optional[str] = Field(default=None, description="Public site URL")
    site_name: Optional[str] = Field(default=None, description="Public site name")

    # Database
    database_url: Optional[str] = Field(default=None, description="Database connection URL")
    database_pool_size: Optional[str] = Field(default=None, description="Connection pool size")
    database_backup_enabled: Optional[str] = Field(default=None, description="Backups enabled")

    # Auth
    jwt_secret: Optional[str] = Field(default=None, description="JWT signing secret")
    nextauth_secret: Optional[str] = Field(default=None, description="Session secret")
    nextauth_url: Optional[str] = Field(default=None, description="Auth callback base URL")

    # Payment
    demo_success_rate: Optional[str] = Field(default=None, description="Demo success rate 0-1")
    demo_processing_delay: Optional[str] = Field(default=None, description="Demo delay (ms)")
    demo_enable_failures: Optional[str] = Field(default=None, description="Simulate failures")
    stripe_publishable_key: Optional[str] = Field(default=None, description="Stripe pk_...")
    stripe_secret_key: Optional[str] = Field(default=None, description="Stripe sk_...")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe whsec_...")
    stripe_api_version: Optional[str] = Field(default=None, description="Stripe API version")

    # Email
    email_service: Optional[str] = Field(default=None, description="demo, sendgrid or ses")
    demo_log_emails: Optional[str] = Field(default=None, description="Log demo emails")
    demo_email_delay: Optional[str] = Field(default=None, description="Demo email delay (ms)")
    sendgrid_api_key: Optional[str] = Field(default=None, description="SendGrid SG. key")
    sendgrid_from_email: Optional[str] = Field(default=None, description="SendGrid sender")
    sendgrid_from_name: Optional[str] = Field(default=None, description="SendGrid sender name")
    ses_from_email: Optional[str] = Field(default=None, description="SES sender")
    aws_region: Optional[str] = Field(default=None, description="AWS region")
    aws_access_key_id: Optional[str] = Field(default=None, description="AWS access key")
    aws_secret_access_key: Optional[str] = Field(default=None, description="AWS secret key")

    # CMS
    cms_enabled: Optional[str] = Field(default=None, description="CMS integration enabled")
    cms_provider: Optional[str] = Field(default=None, description="contentful/strapi/sanity")
    cms_endpoint: Optional[str] = Field(default=None, description="CMS endpoint URL")
    cms_api_key: Optional[str] = Field(default=None, description="CMS API key")
    cms_project_id: Optional[str] = Field(default=None, description="CMS project id")
    cms_fallback_to_local: Optional[str] = Field(default=None, description="Local fallback")

    # Storage
    storage_provider: Optional[str] = Field(default=None, description="local, cloudinary or s3")
    local_upload_dir: Optional[str] = Field(default=None, description="Local upload directory")
    local_public_path: Optional[str] = Field(default=None, description="Local public path")
    cloudinary_cloud_name: Optional[str] = Field(default=None, description="Cloudinary cloud")
    cloudinary_api_key: Optional[str] = Field(default=None, description="Cloudinary API key")
    cloudinary_api_secret: Optional[str] = Field(default=None, description="Cloudinary secret")
    s3_bucket: Optional[str] = Field(default=None, description="S3 bucket name")

    # Monitoring
    monitoring_enabled: Optional[str] = Field(default=None, description="Monitoring enabled")
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN")
    google_analytics_id: Optional[str] = Field(default=None, description="Analytics id")

    # Demo order progression
    demo_auto_advance_orders: Optional[str] = Field(default=None, description="Auto-advance")
    demo_order_advance_delay: Optional[str] = Field(default=None, description="Advance delay (ms)")
    order_api_url: Optional[str] = Field(default=None, description="Order API base URL")

    # Operational flags
    allowed_origins: Optional[str] = Field(default=None, description="CORS origins")
    rate_limit_enabled: Optional[str] = Field(default=None, description="Rate limiting on")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def as_environ(self) -> Dict[str, str]:
        """Return the set variables keyed by their upper-case names."""
        return {name.upper(): value for name, value in self.model_dump(exclude_none=True).items()}


def load_environment() -> Dict[str, str]:
    """Read the process environment (and ``.env``) into a plain mapping."""
    return EnvironmentSettings().as_environ()
