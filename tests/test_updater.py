"""
Unit tests for the HTTP order status updater.
"""
import json
from typing import List

import httpx
import pytest

from checkout_core.orders.models import OrderStatus
from checkout_core.orders.progression import AUTO_ADVANCE_NOTE
from checkout_core.orders.updater import HttpOrderStatusUpdater


class TestHttpOrderStatusUpdater:
    """Test suite for HttpOrderStatusUpdater."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_patches_order_status(self) -> None:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "id": "ord_1",
                    "status": "CONFIRMED",
                    "paymentMethod": "demo-card",
                    "total": 59.0,
                    "customerEmail": "buyer@example.com",
                },
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        updater = HttpOrderStatusUpdater("http://shop.test/", client=client)

        order = await updater("ord_1", OrderStatus.CONFIRMED, AUTO_ADVANCE_NOTE)

        assert order.id == "ord_1"
        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_method == "demo-card"

        request = requests[0]
        assert request.method == "PATCH"
        assert str(request.url) == "http://shop.test/api/orders/ord_1/status"
        assert json.loads(request.content) == {
            "status": "CONFIRMED",
            "note": "Auto-advanced for demo purposes",
        }

        await updater.aclose()
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_error_status_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={}))
        async with httpx.AsyncClient(transport=transport) as client:
            updater = HttpOrderStatusUpdater("http://shop.test", client=client)

            with pytest.raises(httpx.HTTPStatusError):
                await updater("ord_1", OrderStatus.SHIPPED, AUTO_ADVANCE_NOTE)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        updater = HttpOrderStatusUpdater("http://shop.test")
        client = updater._get_client()

        await updater.aclose()

        assert client.is_closed is True
