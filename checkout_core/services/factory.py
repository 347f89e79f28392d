"""
Service factory.

Builds one Payment, Email and Storage provider per factory from the
current configuration, on first request. Providers are chosen from
registries keyed by the configuration's discriminators.
"""
import threading
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..config.models import AppConfig
from ..errors import UnsupportedProviderError
from ..payments.base import PaymentService
from ..payments.factory import PAYMENT_ENGINE_NAMES, PaymentServiceFactory
from .email import DemoEmailService, EmailService, SendGridEmailService, SesEmailService
from .storage import (
    CloudinaryStorageService,
    LocalStorageService,
    S3StorageService,
    StorageService,
)

logger = structlog.get_logger(__name__)

EMAIL_PROVIDERS: Dict[str, Callable[[AppConfig], EmailService]] = {
    "demo": lambda config: DemoEmailService(config.email.demo, site_url=config.site_url),
    "sendgrid": lambda config: SendGridEmailService(config.email.sendgrid, site_url=config.site_url),
    "ses": lambda config: SesEmailService(config.email.ses, site_url=config.site_url),
}

EMAIL_PROVIDER_NAMES: Dict[str, str] = {
    "demo": DemoEmailService.__name__,
    "sendgrid": SendGridEmailService.__name__,
    "ses": SesEmailService.__name__,
}

STORAGE_PROVIDERS: Dict[str, Callable[[AppConfig], StorageService]] = {
    "local": lambda config: LocalStorageService(config.storage.local),
    "cloudinary": lambda config: CloudinaryStorageService(config.storage.cloudinary),
    "s3": lambda config: S3StorageService(config.storage.s3),
}

STORAGE_PROVIDER_NAMES: Dict[str, str] = {
    "local": LocalStorageService.__name__,
    "cloudinary": CloudinaryStorageService.__name__,
    "s3": S3StorageService.__name__,
}


class ServiceFactory:
    """
    Memoizes one provider per capability.

    First construction is guarded by a lock; later calls return the
    cached instance without locking.
    """

    def __init__(
        self,
        config_provider: Callable[[], AppConfig],
        payment_factory: Optional[PaymentServiceFactory] = None,
    ):
        """
        Initialize service factory.

        Args:
            config_provider: Returns the current resolved configuration
            payment_factory: Payment engine factory whose shared instance
                backs the payment capability
        """
        self._config_provider = config_provider
        self.payment_factory = payment_factory or PaymentServiceFactory(config_provider)
        self._payment: Optional[PaymentService] = None
        self._email: Optional[EmailService] = None
        self._storage: Optional[StorageService] = None
        self._lock = threading.Lock()

    def get_payment_service(self) -> PaymentService:
        if self._payment is None:
            with self._lock:
                if self._payment is None:
                    self._payment = self.payment_factory.get_instance()
        return self._payment

    def get_email_service(self) -> EmailService:
        if self._email is None:
            with self._lock:
                if self._email is None:
                    config = self._config_provider()
                    builder = EMAIL_PROVIDERS.get(config.email.service)
                    if builder is None:
                        raise UnsupportedProviderError("email", config.email.service)
                    self._email = builder(config)
                    logger.info("email_service_created", service=config.email.service)
        return self._email

    def get_storage_service(self) -> StorageService:
        if self._storage is None:
            with self._lock:
                if self._storage is None:
                    config = self._config_provider()
                    builder = STORAGE_PROVIDERS.get(config.storage.provider)
                    if builder is None:
                        raise UnsupportedProviderError("storage", config.storage.provider)
                    self._storage = builder(config)
                    logger.info("storage_service_created", provider=config.storage.provider)
        return self._storage

    def reset_services(self) -> None:
        """Drop every memoized provider, including the payment factory's instance."""
        with self._lock:
            self._payment = None
            self._email = None
            self._storage = None
        self.payment_factory.reset_instance()
        logger.info("services_reset")

    def get_service_status(self) -> Dict[str, Dict[str, Any]]:
        """
        Describe which provider each capability uses.

        Does not build providers; ``is_demo`` is ``None`` for capabilities
        not requested yet.
        """
        config = self._config_provider()
        return {
            "payment": {
                "mode": config.payment.mode,
                "service": PAYMENT_ENGINE_NAMES.get(config.payment.mode, "Unsupported"),
                "is_demo": self._payment.is_demo() if self._payment is not None else None,
            },
            "email": {
                "service": config.email.service,
                "provider": EMAIL_PROVIDER_NAMES.get(config.email.service, "Unsupported"),
                "is_demo": self._email.is_demo() if self._email is not None else None,
            },
            "storage": {
                "provider": config.storage.provider,
                "service": STORAGE_PROVIDER_NAMES.get(config.storage.provider, "Unsupported"),
                "is_demo": self._storage.is_demo() if self._storage is not None else None,
            },
        }

    def _capabilities(self) -> Dict[str, Callable[[], Any]]:
        return {
            "payment": self.get_payment_service,
            "email": self.get_email_service,
            "storage": self.get_storage_service,
        }

    def validate_services(self) -> Dict[str, Any]:
        """
        Build every provider and collect construction failures.

        Returns:
            Dict[str, Any]: ``{"valid": bool, "errors": [str, ...]}``
        """
        errors: List[str] = []
        for name, getter in self._capabilities().items():
            try:
                getter()
            except Exception as e:
                errors.append(f"{name.capitalize()} service error: {str(e)}")

        if errors:
            logger.warning("service_validation_failed", errors=errors)
        return {"valid": not errors, "errors": errors}

    def check_service_health(self) -> Dict[str, Any]:
        """
        Per-capability health map; never raises.

        Returns:
            Dict[str, Any]: ``{"healthy": bool, "services": {name: status}}``
        """
        services: Dict[str, Dict[str, str]] = {}
        healthy = True
        for name, getter in self._capabilities().items():
            try:
                getter()
                services[name] = {"status": "healthy"}
            except Exception as e:
                logger.error("service_health_check_failed", service=name, error=str(e))
                services[name] = {"status": "error", "message": str(e)}
                healthy = False

        return {"healthy": healthy, "services": services}
