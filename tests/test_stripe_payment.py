"""
Unit tests for the Stripe payment engine and gateway.
"""
import json
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from checkout_core.config.models import StripeSettings
from checkout_core.errors import PaymentGatewayError, ServiceConstructionError, WebhookError
from checkout_core.payments.models import PaymentMethod
from checkout_core.payments.production import (
    StripePaymentService,
    card_payment_method_data,
    to_cents,
    validate_stripe_config,
)
from checkout_core.payments.stripe_gateway import (
    CircuitBreaker,
    StripeErrorType,
    StripeGateway,
    StripeGatewayError,
)

from conftest import STRIPE_WEBHOOK_SECRET, sign_stripe_payload


def _settings(**overrides: str) -> StripeSettings:
    values = {
        "publishable_key": "pk_test_checkout",
        "secret_key": "sk_test_checkout",
        "webhook_secret": "",
    }
    values.update(overrides)
    return StripeSettings(**values)


@pytest.fixture
def gateway() -> AsyncMock:
    return AsyncMock(spec=StripeGateway)


@pytest.fixture
def service(gateway: AsyncMock) -> StripePaymentService:
    return StripePaymentService(_settings(), gateway=gateway)


def _intent(**fields: Any) -> MagicMock:
    intent = MagicMock()
    for key, value in fields.items():
        setattr(intent, key, value)
    return intent


class TestStripePaymentService:
    """Test suite for StripePaymentService."""

    @pytest.mark.unit
    def test_requires_secret_key(self) -> None:
        with pytest.raises(ServiceConstructionError, match="Stripe secret key is required") as exc:
            StripePaymentService(_settings(secret_key=""))
        assert exc.value.capability == "payment"

    @pytest.mark.unit
    def test_accessors(self, service: StripePaymentService) -> None:
        assert service.is_demo() is False
        assert service.get_stripe_publishable_key() == "pk_test_checkout"
        assert service.has_valid_credentials() is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_credentials_short_circuit(
        self, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        service = StripePaymentService(_settings(publishable_key="bad"), gateway=gateway)

        result = await service.process_payment(10.0, valid_card)

        assert result.success is False
        assert result.error == "Invalid Stripe credentials"
        gateway.charge.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_process_payment_success(
        self, service: StripePaymentService, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        gateway.charge.return_value = _intent(
            id="pi_test_123", status="succeeded", latest_charge="ch_test_123"
        )

        result = await service.process_payment(129.99, valid_card)

        assert result.success is True
        assert result.payment_id == "pi_test_123"
        assert result.transaction_id == "ch_test_123"
        assert result.receipt.is_demo_transaction is False
        assert result.receipt.last4 == "1111"
        assert result.processing_time is not None
        assert result.receipt.method.card_number == "**** **** **** 1111"
        assert result.receipt.method.cvv is None
        assert "4111 1111 1111 1111" not in result.model_dump_json()

        gateway.charge.assert_awaited_once_with(
            12999, "USD", card_payment_method_data(valid_card)
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_requires_action_is_not_success(
        self, service: StripePaymentService, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        gateway.charge.return_value = _intent(id="pi_3ds", status="requires_action")

        result = await service.process_payment(10.0, valid_card)

        assert result.success is False
        assert result.payment_id == "pi_3ds"
        assert result.error == "Additional authentication required"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_decline_is_reported_not_raised(
        self, service: StripePaymentService, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        gateway.charge.side_effect = StripeGatewayError(
            "Your card was declined.",
            StripeErrorType.PERMANENT,
            decline_code="generic_decline",
        )

        result = await service.process_payment(10.0, valid_card)

        assert result.success is False
        assert result.error == "Your card was declined."

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_card_rejected_before_gateway(
        self, service: StripePaymentService, gateway: AsyncMock
    ) -> None:
        method = PaymentMethod(
            card_number="4111111111111111", expiry_date="bad", cvv="123", cardholder_name="A"
        )

        result = await service.process_payment(10.0, method)

        assert result.success is False
        assert result.error == "Please enter a valid expiry date (MM/YY)"
        gateway.charge.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_payment_intent(
        self, service: StripePaymentService, gateway: AsyncMock
    ) -> None:
        gateway.create_payment_intent.return_value = _intent(
            id="pi_new", status="requires_payment_method", client_secret="pi_new_secret_x"
        )

        intent = await service.create_payment_intent(50.0)

        assert intent.id == "pi_new"
        assert intent.amount == 50.0
        assert intent.client_secret == "pi_new_secret_x"
        gateway.create_payment_intent.assert_awaited_once_with(5000, "USD")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_payment_intent_invalid_credentials(self, gateway: AsyncMock) -> None:
        service = StripePaymentService(_settings(secret_key="rk_live_restricted"), gateway=gateway)
        with pytest.raises(PaymentGatewayError, match="Invalid Stripe credentials"):
            await service.create_payment_intent(50.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirm_payment(
        self, service: StripePaymentService, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        gateway.confirm_payment_intent.return_value = _intent(
            id="pi_confirm", status="succeeded", amount=2500, currency="usd", latest_charge=None
        )

        result = await service.confirm_payment("pi_confirm", valid_card)

        assert result.success is True
        assert result.receipt.amount == 25.0
        assert result.receipt.currency == "USD"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_confirm_payment_gateway_error(
        self, service: StripePaymentService, gateway: AsyncMock, valid_card: PaymentMethod
    ) -> None:
        gateway.confirm_payment_intent.side_effect = StripeGatewayError(
            "No such payment_intent", StripeErrorType.PERMANENT
        )

        result = await service.confirm_payment("pi_missing", valid_card)

        assert result.success is False
        assert result.payment_id == "pi_missing"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_payment_methods(
        self, service: StripePaymentService, gateway: AsyncMock
    ) -> None:
        assert await service.get_payment_methods() == []

        card = MagicMock(exp_month=3, exp_year=2031)
        item = MagicMock(card=card)
        item.billing_details.name = "Saved Card"
        gateway.list_payment_methods.return_value = MagicMock(data=[item])

        methods = await service.get_payment_methods("cus_123")

        assert len(methods) == 1
        assert methods[0].expiry_date == "03/31"
        assert methods[0].cardholder_name == "Saved Card"
        gateway.list_payment_methods.assert_awaited_once_with("cus_123")


class TestStripeWebhooks:
    """Test suite for Stripe webhook handling."""

    @staticmethod
    def _event(event_type: str = "payment_intent.succeeded") -> str:
        return json.dumps(
            {
                "id": "evt_test_1",
                "object": "event",
                "type": event_type,
                "data": {"object": {"id": "pi_test_1", "object": "payment_intent"}},
            }
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_signature(self, service: StripePaymentService) -> None:
        result = await service.handle_webhook(self._event(), None)
        assert result == {"success": False, "error": "Missing Stripe signature"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dispatches_registered_handler(self, service: StripePaymentService) -> None:
        received: Dict[str, Any] = {}

        async def on_success(data: Dict[str, Any]) -> None:
            received.update(data)

        service.register_handler("payment_intent.succeeded", on_success)

        result = await service.handle_webhook(self._event(), "t=1,v1=unchecked")

        assert result["success"] is True
        assert result["event"]["type"] == "payment_intent.succeeded"
        assert received["id"] == "pi_test_1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unhandled_event_type_succeeds(self, service: StripePaymentService) -> None:
        result = await service.handle_webhook(self._event("customer.created"), "t=1,v1=x")
        assert result["success"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_handler_failure(self, service: StripePaymentService) -> None:
        service.register_handler(
            "payment_intent.succeeded", AsyncMock(side_effect=RuntimeError("db down"))
        )

        result = await service.handle_webhook(self._event(), "t=1,v1=x")

        assert result["success"] is False
        assert "db down" in result["error"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"type": "payment_intent.succeeded", "data": "oops"},
            {"type": "payment_intent.succeeded", "data": {"object": 1}},
            {"type": "payment_intent.succeeded"},
            {
                "type": "payment_intent.payment_failed",
                "data": {"object": {"id": "pi_x", "last_payment_error": "card_declined"}},
            },
        ],
    )
    async def test_malformed_event_data_is_tolerated(
        self, service: StripePaymentService, body: Dict[str, Any]
    ) -> None:
        received: List[Dict[str, Any]] = []

        async def on_event(data: Dict[str, Any]) -> None:
            received.append(data)

        service.register_handler(body["type"], on_event)

        result = await service.handle_webhook(json.dumps(body), "t=1,v1=x")

        assert result["success"] is True
        assert len(received) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_json(self, service: StripePaymentService) -> None:
        result = await service.handle_webhook("{not json", "t=1,v1=x")
        assert result["success"] is False
        assert result["error"].startswith("Invalid webhook payload")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_verified_signature(self) -> None:
        service = StripePaymentService(_settings(webhook_secret=STRIPE_WEBHOOK_SECRET))
        payload = self._event()

        result = await service.handle_webhook(
            payload, sign_stripe_payload(payload, STRIPE_WEBHOOK_SECRET)
        )

        assert result["success"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_forged_signature(self) -> None:
        service = StripePaymentService(_settings(webhook_secret=STRIPE_WEBHOOK_SECRET))
        payload = self._event()

        result = await service.handle_webhook(
            payload, sign_stripe_payload(payload, "whsec_someone_else")
        )

        assert result["success"] is False
        assert result["error"].startswith("Invalid Stripe signature")


class TestStripeGateway:
    """Test suite for StripeGateway."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error,expected",
        [
            (stripe.RateLimitError("slow down"), StripeErrorType.RATE_LIMIT),
            (stripe.APIConnectionError("unreachable"), StripeErrorType.TRANSIENT),
            (stripe.APIError("server error"), StripeErrorType.TRANSIENT),
            (stripe.CardError("declined", None, "card_declined"), StripeErrorType.PERMANENT),
            (stripe.AuthenticationError("bad key"), StripeErrorType.PERMANENT),
        ],
    )
    def test_classify_error(self, error: stripe.StripeError, expected: StripeErrorType) -> None:
        assert StripeGateway._classify_error(error) == expected

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transient_errors_retried(self) -> None:
        gateway = StripeGateway("sk_test_checkout")
        created = MagicMock(id="pi_retry", status="requires_payment_method")

        with patch(
            "stripe.PaymentIntent.create",
            side_effect=[stripe.APIConnectionError("reset"), created],
        ) as create:
            intent = await gateway.create_payment_intent(1000, "USD")

        assert intent is created
        assert create.call_count == 2
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 1000
        assert kwargs["currency"] == "usd"
        assert kwargs["api_key"] == "sk_test_checkout"
        assert kwargs["stripe_version"] == "2023-10-16"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_card_errors_not_retried(self) -> None:
        gateway = StripeGateway("sk_test_checkout")

        with patch(
            "stripe.PaymentIntent.create",
            side_effect=stripe.CardError("Your card was declined.", None, "card_declined"),
        ) as create:
            with pytest.raises(StripeGatewayError) as exc:
                await gateway.charge(1000, "usd", {"type": "card"})

        assert create.call_count == 1
        assert exc.value.error_type == StripeErrorType.PERMANENT
        assert exc.value.retryable is False
        assert gateway.circuit_breaker.failure_count == 0

    @pytest.mark.unit
    def test_verify_webhook_rejects_bad_signature(self) -> None:
        with pytest.raises(WebhookError, match="Invalid Stripe signature"):
            StripeGateway.verify_webhook("{}", "t=1,v1=bad", STRIPE_WEBHOOK_SECRET)


class TestCircuitBreaker:
    """Test suite for CircuitBreaker."""

    @pytest.mark.unit
    def test_opens_after_threshold(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2, timeout=60)
        failing = MagicMock(side_effect=RuntimeError("boom"))

        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(failing)

        assert breaker.state == "open"
        with pytest.raises(StripeGatewayError, match="circuit open"):
            breaker.call(failing)
        assert failing.call_count == 2

    @pytest.mark.unit
    def test_ignored_errors_do_not_count(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1)
        declined = MagicMock(side_effect=stripe.CardError("declined", None, "card_declined"))

        with pytest.raises(stripe.CardError):
            breaker.call(declined)

        assert breaker.state == "closed"

    @pytest.mark.unit
    def test_half_open_recovers(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1, timeout=0, success_threshold=1)
        with pytest.raises(RuntimeError):
            breaker.call(MagicMock(side_effect=RuntimeError("boom")))
        assert breaker.state == "open"

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == "closed"

    @pytest.mark.unit
    def test_half_open_failure_reopens(self) -> None:
        breaker = CircuitBreaker(failure_threshold=3, timeout=0, success_threshold=2)
        failing = MagicMock(side_effect=RuntimeError("boom"))
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(failing)
        assert breaker.state == "open"

        breaker.call(lambda: "ok")
        assert breaker.state == "half_open"
        assert breaker.failure_count == 0

        with pytest.raises(RuntimeError):
            breaker.call(failing)
        assert breaker.state == "open"


class TestStripeHelpers:
    """Test suite for module helpers."""

    @pytest.mark.unit
    def test_to_cents(self) -> None:
        assert to_cents(129.99) == 12999
        assert to_cents(0.1 + 0.2) == 30

    @pytest.mark.unit
    def test_card_payment_method_data(self, valid_card: PaymentMethod) -> None:
        data = card_payment_method_data(valid_card)
        assert data["card"] == {
            "number": "4111111111111111",
            "exp_month": 12,
            "exp_year": 2099,
            "cvc": "123",
        }
        assert data["billing_details"] == {"name": "Demo User"}

    @pytest.mark.unit
    def test_validate_stripe_config(self, production_env: Dict[str, str]) -> None:
        assert validate_stripe_config(production_env) == {
            "is_valid": True,
            "publishable_key": "pk_test_checkout",
            "has_webhook_secret": True,
        }
        assert validate_stripe_config({})["is_valid"] is False
