"""Payment engine selection by mode."""
import threading
from typing import Callable, Dict, Optional

import structlog

from ..config.models import AppConfig, DemoPaymentSettings, PaymentConfig
from ..errors import UnsupportedProviderError
from .base import PaymentService
from .demo import DemoPaymentService
from .production import StripePaymentService

logger = structlog.get_logger(__name__)


def _build_demo(config: PaymentConfig) -> PaymentService:
    return DemoPaymentService(config.demo or DemoPaymentSettings())


def _build_stripe(config: PaymentConfig) -> PaymentService:
    return StripePaymentService(config.stripe)


PAYMENT_ENGINES: Dict[str, Callable[[PaymentConfig], PaymentService]] = {
    "demo": _build_demo,
    "production": _build_stripe,
}

PAYMENT_ENGINE_NAMES: Dict[str, str] = {
    "demo": DemoPaymentService.__name__,
    "production": StripePaymentService.__name__,
}


class PaymentServiceFactory:
    """
    Builds payment engines and keeps one shared instance.

    The shared instance is independent of ``ServiceFactory``'s memoized
    payment handle; ``ServiceFactory.reset_services`` clears both.
    """

    def __init__(self, config_provider: Callable[[], AppConfig]):
        """
        Initialize factory.

        Args:
            config_provider: Returns the current resolved configuration
        """
        self._config_provider = config_provider
        self._instance: Optional[PaymentService] = None
        self._lock = threading.Lock()

    def create_payment_service(self, config: Optional[PaymentConfig] = None) -> PaymentService:
        """
        Build a new engine.

        Args:
            config: Explicit payment configuration; the resolved
                ``AppConfig.payment`` is used when omitted

        Returns:
            PaymentService: Demo or Stripe engine

        Raises:
            ServiceConstructionError: If the engine cannot be built
        """
        payment_config = config if config is not None else self._config_provider().payment
        builder = PAYMENT_ENGINES.get(payment_config.mode)
        if builder is None:
            raise UnsupportedProviderError("payment", payment_config.mode)

        service = builder(payment_config)
        logger.info("payment_service_created", mode=payment_config.mode)
        return service

    def get_instance(self, config: Optional[PaymentConfig] = None) -> PaymentService:
        if self._instance is None:
            with self._lock:
                if self._instance is None:
                    self._instance = self.create_payment_service(config)
        return self._instance

    def reset_instance(self) -> None:
        with self._lock:
            self._instance = None
