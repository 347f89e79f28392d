"""
Health checks for liveness and readiness endpoints.

Checks:
- Configuration resolves and validates
- Payment, email and storage providers can be built
- Order progression loop state (demo mode)
"""
from typing import TYPE_CHECKING, Any, Dict

import structlog

from ..errors import CheckoutCoreError

if TYPE_CHECKING:
    from ..context import AppContext

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for the checkout core.

    Every public method reports problems in its result; none raise.
    """

    def __init__(self, context: "AppContext") -> None:
        self.context = context

    async def check_config(self) -> Dict[str, Any]:
        """
        Check that configuration resolves.

        Raises:
            HealthCheckError: If resolution or validation fails
        """
        try:
            config = self.context.get_config()
        except CheckoutCoreError as e:
            logger.error("config_health_check_failed", error=str(e))
            raise HealthCheckError(f"Configuration invalid: {str(e)}")

        return {
            "status": "healthy",
            "service": "config",
            "mode": config.mode,
        }

    async def check_services(self) -> Dict[str, Any]:
        """
        Check that every provider can be built.

        Raises:
            HealthCheckError: If any provider fails to build
        """
        report = self.context.check_service_health()
        if not report["healthy"]:
            failed = [name for name, item in report["services"].items() if item["status"] != "healthy"]
            raise HealthCheckError(f"Services unavailable: {', '.join(failed)}")

        return {"status": "healthy", "service": "services", "services": report["services"]}

    def check_progression(self) -> Dict[str, Any]:
        engine = self.context.progression_engine
        return {
            "status": "healthy",
            "service": "order_progression",
            "running": engine.is_running if engine is not None else False,
            "scheduled": len(engine.scheduled_order_ids()) if engine is not None else 0,
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks: Dict[str, Any] = {}
        all_healthy = True

        try:
            checks["config"] = await self.check_config()
        except HealthCheckError as e:
            checks["config"] = {"status": "unhealthy", "service": "config", "error": str(e)}
            all_healthy = False

        # Providers cannot be built without a configuration
        if all_healthy:
            try:
                checks["services"] = await self.check_services()
            except HealthCheckError as e:
                checks["services"] = {"status": "unhealthy", "service": "services", "error": str(e)}
                all_healthy = False

        checks["order_progression"] = self.check_progression()

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness check endpoint.

        Does not check configuration or providers.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        return await self.check_all()
