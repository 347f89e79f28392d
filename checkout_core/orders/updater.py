"""HTTP client for the order status update endpoint."""
from typing import Optional

import httpx
import structlog

from .models import Order, OrderStatus

logger = structlog.get_logger(__name__)


class HttpOrderStatusUpdater:
    """
    PATCHes ``<api_url>/api/orders/<id>/status`` with ``{status, note}``.

    Usable directly as the progression engine's ``update_status``.
    """

    def __init__(
        self,
        api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize updater.

        Args:
            api_url: Base URL of the order API
            client: Shared client (one is created lazily when omitted)
            timeout: Request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def __call__(self, order_id: str, status: OrderStatus, note: str) -> Order:
        """
        Apply a status change.

        Returns:
            Order: Updated order from the response body

        Raises:
            httpx.HTTPStatusError: For non-2xx responses
        """
        url = f"{self.api_url}/api/orders/{order_id}/status"
        response = await self._get_client().patch(url, json={"status": status.value, "note": note})
        response.raise_for_status()

        logger.info("order_status_patched", order_id=order_id, status=status.value)
        return Order.model_validate(response.json())

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
