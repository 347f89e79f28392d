"""
Application context.

Owns the state that would otherwise be process-wide: the cached
configuration, the service factory with its memoized providers, the
payment factory's shared engine and the order progression engine.

Module-level helpers (``get_config``, ``get_payment_service``, ...)
delegate to a default context created on first use.
"""
import threading
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

import structlog

from .config.diagnostics import (
    ProductionConfigReport,
    get_config_summary as build_config_summary,
    get_production_checklist as build_production_checklist,
    validate_production_config as check_production_config,
)
from .config.models import AppConfig
from .config.resolver import ConfigResolver
from .config.validator import ConfigValidator
from .orders.progression import Clock, OrderProgressionEngine, StatusUpdater
from .orders.updater import HttpOrderStatusUpdater
from .payments.base import PaymentService
from .payments.factory import PaymentServiceFactory
from .services.email import EmailService
from .services.factory import ServiceFactory
from .services.storage import StorageService

logger = structlog.get_logger(__name__)


class AppContext:
    """Explicit holder for configuration and service singletons."""

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        clock: Optional[Clock] = None,
        status_updater: Optional[StatusUpdater] = None,
    ):
        """
        Initialize context.

        Args:
            env: Variable mapping; the process environment (and ``.env``)
                is read on each resolution when omitted
            clock: Time source for the progression engine
            status_updater: Order status collaborator; an HTTP client
                against ``orders.api_url`` is used when omitted
        """
        self.env = env
        self._clock = clock
        self._status_updater = status_updater
        self._config: Optional[AppConfig] = None
        self._config_lock = threading.Lock()
        self._engine: Optional[OrderProgressionEngine] = None
        self._engine_lock = threading.Lock()
        self.payment_factory = PaymentServiceFactory(self.get_config)
        self.services = ServiceFactory(self.get_config, self.payment_factory)

    # Configuration

    def get_config(self) -> AppConfig:
        """
        Resolve and validate the configuration once, then reuse it.

        Raises:
            ConfigValidationError: If resolution or validation fails
        """
        if self._config is None:
            with self._config_lock:
                if self._config is None:
                    config = ConfigResolver(self.env).resolve()
                    ConfigValidator.validate(config)
                    self._config = config
                    logger.info("config_loaded", mode=config.mode, app_env=config.app_env)
        return self._config

    def reset_config(self) -> None:
        with self._config_lock:
            self._config = None

    def is_demo_mode(self) -> bool:
        return self.get_config().is_demo

    def is_production_mode(self) -> bool:
        return self.get_config().is_production

    def is_development(self) -> bool:
        return self.get_config().app_env == "development"

    def is_production(self) -> bool:
        return self.get_config().app_env == "production"

    def get_config_summary(self) -> Dict[str, Any]:
        return build_config_summary(self.get_config())

    def validate_production_config(self) -> ProductionConfigReport:
        return check_production_config(self.env)

    def get_production_checklist(self) -> Dict[str, Dict[str, Any]]:
        return build_production_checklist(self.env)

    # Services

    def get_payment_service(self) -> PaymentService:
        return self.services.get_payment_service()

    def get_email_service(self) -> EmailService:
        return self.services.get_email_service()

    def get_storage_service(self) -> StorageService:
        return self.services.get_storage_service()

    def reset_services(self) -> None:
        self.services.reset_services()

    def get_service_status(self) -> Dict[str, Dict[str, Any]]:
        return self.services.get_service_status()

    def validate_services(self) -> Dict[str, Any]:
        return self.services.validate_services()

    def check_service_health(self) -> Dict[str, Any]:
        return self.services.check_service_health()

    # Order progression

    @property
    def progression_engine(self) -> Optional[OrderProgressionEngine]:
        """Engine if it has been built, without building it."""
        return self._engine

    def get_progression_engine(self) -> OrderProgressionEngine:
        if self._engine is None:
            with self._engine_lock:
                if self._engine is None:
                    config = self.get_config()
                    updater = self._status_updater or HttpOrderStatusUpdater(config.orders.api_url)
                    self._engine = OrderProgressionEngine(
                        update_status=updater,
                        settings=config.orders,
                        clock=self._clock,
                        demo_mode=config.is_demo,
                    )
        return self._engine

    # Lifecycle

    def reset(self) -> None:
        """Drop configuration, providers and the progression engine."""
        if self._engine is not None:
            self._engine.shutdown()
        with self._engine_lock:
            self._engine = None
        self.reset_services()
        self.reset_config()
        logger.info("context_reset")

    async def aclose(self) -> None:
        """Stop order progression and release the order API client."""
        engine = self._engine
        if engine is None:
            return
        engine.shutdown()
        updater = engine.update_status_callable
        if isinstance(updater, HttpOrderStatusUpdater):
            await updater.aclose()


@lru_cache()
def get_context() -> AppContext:
    """
    Get the process-wide default context.

    Returns:
        AppContext: Context reading the process environment
    """
    return AppContext()


def get_config() -> AppConfig:
    return get_context().get_config()


def reset_config() -> None:
    get_context().reset_config()


def is_demo_mode() -> bool:
    return get_context().is_demo_mode()


def is_production_mode() -> bool:
    return get_context().is_production_mode()


def is_development() -> bool:
    return get_context().is_development()


def is_production() -> bool:
    return get_context().is_production()


def get_config_summary() -> Dict[str, Any]:
    return get_context().get_config_summary()


def validate_production_config() -> ProductionConfigReport:
    return get_context().validate_production_config()


def get_production_checklist() -> Dict[str, Dict[str, Any]]:
    return get_context().get_production_checklist()


def get_payment_service() -> PaymentService:
    return get_context().get_payment_service()


def get_email_service() -> EmailService:
    return get_context().get_email_service()


def get_storage_service() -> StorageService:
    return get_context().get_storage_service()


def reset_services() -> None:
    get_context().reset_services()


def get_service_status() -> Dict[str, Dict[str, Any]]:
    return get_context().get_service_status()


def validate_services() -> Dict[str, Any]:
    return get_context().validate_services()


def check_service_health() -> Dict[str, Any]:
    return get_context().check_service_health()
