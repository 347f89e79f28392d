"""
Production payment engine backed by Stripe.

Card charges go through ``StripeGateway``. Declines and credential
problems on charge/confirm come back as ``PaymentResult(success=False)``;
intent creation and payment method listing raise ``PaymentGatewayError``.
"""
import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import structlog

from ..config.models import StripeSettings
from ..errors import PaymentGatewayError, ServiceConstructionError, WebhookError
from ..monitoring.metrics import metrics
from . import cards
from .models import (
    PaymentIntent,
    PaymentMethod,
    PaymentMethodValidation,
    PaymentReceipt,
    PaymentResult,
)
from .stripe_gateway import StripeGateway, StripeGatewayError

logger = structlog.get_logger(__name__)

WebhookEventHandler = Callable[[Dict[str, Any]], Awaitable[Any]]

INVALID_CREDENTIALS = "Invalid Stripe credentials"


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def card_payment_method_data(method: PaymentMethod) -> Dict[str, Any]:
    """Translate a checkout payment method into Stripe ``payment_method_data``."""
    month, year = (method.expiry_date or "/").split("/")
    return {
        "type": "card",
        "card": {
            "number": cards.digits_only(method.card_number or ""),
            "exp_month": int(month),
            "exp_year": 2000 + int(year),
            "cvc": method.cvv,
        },
        "billing_details": {"name": method.cardholder_name},
    }


def masked_payment_method(method: PaymentMethod) -> PaymentMethod:
    """Copy of ``method`` safe to hand back to clients: last four digits only, no CVV."""
    last4 = cards.get_last4(method.card_number)
    return method.model_copy(
        update={"card_number": f"**** **** **** {last4}" if last4 else None, "cvv": None}
    )


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


class StripePaymentService:
    """Credential-gated Stripe payment engine."""

    def __init__(self, settings: StripeSettings, gateway: Optional[StripeGateway] = None):
        """
        Initialize production engine.

        Args:
            settings: Stripe keys and API version
            gateway: Pre-built gateway (built from the settings when omitted)

        Raises:
            ServiceConstructionError: If the secret key is absent
        """
        if not settings.secret_key:
            raise ServiceConstructionError("Stripe secret key is required", capability="payment")

        self.settings = settings
        self.gateway = gateway or StripeGateway(settings.secret_key, settings.api_version)
        self.event_handlers: Dict[str, WebhookEventHandler] = {}

    def is_demo(self) -> bool:
        return False

    def get_stripe_publishable_key(self) -> str:
        return self.settings.publishable_key

    def get_webhook_secret(self) -> str:
        return self.settings.webhook_secret

    def has_valid_credentials(self) -> bool:
        return self.settings.secret_key.startswith("sk_") and self.settings.publishable_key.startswith(
            "pk_"
        )

    def validate_payment_method(self, method: PaymentMethod) -> PaymentMethodValidation:
        return cards.validate_payment_method(method)

    def _rejection(self, method: PaymentMethod) -> Optional[str]:
        """First validation message for a card that Stripe would reject anyway."""
        if method.type != "card":
            return f"Unsupported payment method type: {method.type}"
        validation = self.validate_payment_method(method)
        if validation.valid:
            return None
        return next(iter(validation.errors.values()))

    def _result_from_intent(
        self, intent: Any, amount: float, currency: str, method: PaymentMethod
    ) -> PaymentResult:
        if intent.status != "succeeded":
            error = (
                "Additional authentication required"
                if intent.status == "requires_action"
                else f"Payment not completed (status: {intent.status})"
            )
            return PaymentResult(success=False, payment_id=intent.id, error=error)

        receipt = PaymentReceipt(
            payment_id=intent.id,
            amount=amount,
            currency=currency,
            method=masked_payment_method(method),
            timestamp=datetime.now(timezone.utc),
            last4=cards.get_last4(method.card_number),
            brand=cards.get_card_brand(method.card_number or ""),
            is_demo_transaction=False,
        )
        return PaymentResult(
            success=True,
            payment_id=intent.id,
            transaction_id=getattr(intent, "latest_charge", None),
            receipt=receipt,
        )

    async def process_payment(
        self, amount: float, method: PaymentMethod, currency: str = "USD"
    ) -> PaymentResult:
        """
        Charge a card through Stripe.

        Args:
            amount: Amount in major currency units
            method: Card details
            currency: ISO currency code

        Returns:
            PaymentResult: Declines are reported with ``success=False``
        """
        if not self.has_valid_credentials():
            logger.error("stripe_invalid_credentials", operation="process_payment")
            return PaymentResult(success=False, payment_id="", error=INVALID_CREDENTIALS)

        rejection = self._rejection(method)
        if rejection:
            return PaymentResult(success=False, payment_id="", error=rejection)

        started = time.monotonic()
        try:
            intent = await self.gateway.charge(
                to_cents(amount), currency, card_payment_method_data(method)
            )
        except StripeGatewayError as e:
            metrics.record_payment("stripe", False, time.monotonic() - started)
            logger.warning("stripe_payment_failed", error=str(e), decline_code=e.decline_code)
            return PaymentResult(
                success=False,
                payment_id="",
                error=str(e),
                processing_time=(time.monotonic() - started) * 1000,
            )

        result = self._result_from_intent(intent, amount, currency, method)
        result.processing_time = (time.monotonic() - started) * 1000
        metrics.record_payment("stripe", result.success, time.monotonic() - started)
        logger.info("stripe_payment_processed", payment_id=result.payment_id, success=result.success)
        return result

    async def create_payment_intent(self, amount: float, currency: str = "USD") -> PaymentIntent:
        """
        Create a Stripe PaymentIntent for client-side confirmation.

        Raises:
            PaymentGatewayError: On invalid credentials or Stripe failure
        """
        if not self.has_valid_credentials():
            raise PaymentGatewayError(INVALID_CREDENTIALS)

        intent = await self.gateway.create_payment_intent(to_cents(amount), currency)
        return PaymentIntent(
            id=intent.id,
            amount=amount,
            currency=currency,
            status=intent.status,
            client_secret=intent.client_secret,
        )

    async def confirm_payment(self, intent_id: str, method: PaymentMethod) -> PaymentResult:
        if not self.has_valid_credentials():
            logger.error("stripe_invalid_credentials", operation="confirm_payment")
            return PaymentResult(success=False, payment_id=intent_id, error=INVALID_CREDENTIALS)

        rejection = self._rejection(method)
        if rejection:
            return PaymentResult(success=False, payment_id=intent_id, error=rejection)

        try:
            intent = await self.gateway.confirm_payment_intent(
                intent_id, card_payment_method_data(method)
            )
        except StripeGatewayError as e:
            logger.warning("stripe_confirm_failed", payment_intent_id=intent_id, error=str(e))
            return PaymentResult(success=False, payment_id=intent_id, error=str(e))

        currency = str(getattr(intent, "currency", "usd")).upper()
        return self._result_from_intent(intent, intent.amount / 100, currency, method)

    async def get_payment_methods(self, customer_id: Optional[str] = None) -> List[PaymentMethod]:
        """
        List saved cards for a Stripe customer.

        Card numbers never leave Stripe, so only expiry and holder name
        are populated.

        Raises:
            PaymentGatewayError: On invalid credentials or Stripe failure
        """
        if not self.has_valid_credentials():
            raise PaymentGatewayError(INVALID_CREDENTIALS)
        if not customer_id:
            return []

        listing = await self.gateway.list_payment_methods(customer_id)
        methods = []
        for item in listing.data:
            card = item.card
            methods.append(
                PaymentMethod(
                    type="card",
                    expiry_date=f"{card.exp_month:02d}/{card.exp_year % 100:02d}",
                    cardholder_name=item.billing_details.name,
                )
            )
        return methods

    # Webhooks

    def register_handler(self, event_type: str, handler: WebhookEventHandler) -> None:
        """
        Register an extra handler for a Stripe event type.

        Args:
            event_type: Stripe event type (e.g., 'payment_intent.succeeded')
            handler: Async callable receiving the event's data object
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def _parse_event(self, payload: Union[str, bytes], signature: Optional[str]) -> Dict[str, Any]:
        if not signature:
            raise WebhookError("Missing Stripe signature")

        if self.settings.webhook_secret:
            self.gateway.verify_webhook(payload, signature, self.settings.webhook_secret)

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookError(f"Invalid webhook payload: {str(e)}")
        if not isinstance(event, Mapping):
            raise WebhookError("Invalid webhook payload: expected a JSON object")
        return dict(event)

    async def _dispatch(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type")
        event_data = dict(_mapping(_mapping(event.get("data")).get("object")))

        if event_type == "payment_intent.succeeded":
            logger.info("stripe_payment_intent_succeeded", payment_intent_id=event_data.get("id"))
        elif event_type == "payment_intent.payment_failed":
            logger.warning(
                "stripe_payment_intent_failed",
                payment_intent_id=event_data.get("id"),
                error=_mapping(event_data.get("last_payment_error")).get("message"),
            )
        else:
            logger.info("stripe_webhook_unhandled", event_type=event_type)

        handler = self.event_handlers.get(str(event_type))
        if handler is None:
            return
        try:
            await handler(event_data)
        except Exception as e:
            logger.error("webhook_event_processing_failed", event_type=event_type, error=str(e))
            raise WebhookError(f"Failed to process event {event_type}: {str(e)}")

    async def handle_webhook(
        self, payload: Union[str, bytes], signature: Optional[str]
    ) -> Dict[str, Any]:
        """
        Verify, parse and dispatch a Stripe webhook.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Returns:
            Dict[str, Any]: ``{"success": True, "event": ...}`` or
            ``{"success": False, "error": ...}``
        """
        started = time.monotonic()
        try:
            event = self._parse_event(payload, signature)
            await self._dispatch(event)
        except WebhookError as e:
            logger.error("stripe_webhook_rejected", error=str(e))
            metrics.record_webhook_event("stripe", "unknown", "failed", time.monotonic() - started)
            return {"success": False, "error": str(e)}

        metrics.record_webhook_event(
            "stripe", str(event.get("type")), "success", time.monotonic() - started
        )
        return {"success": True, "event": event}


def validate_stripe_config(env: Mapping[str, str]) -> Dict[str, Any]:
    """
    Check Stripe variables in an environment mapping.

    Returns:
        Dict[str, Any]: ``is_valid``, the publishable key and whether a
        webhook secret is present
    """
    publishable_key = env.get("STRIPE_PUBLISHABLE_KEY") or ""
    secret_key = env.get("STRIPE_SECRET_KEY") or ""
    return {
        "is_valid": publishable_key.startswith("pk_") and secret_key.startswith("sk_"),
        "publishable_key": publishable_key,
        "has_webhook_secret": bool(env.get("STRIPE_WEBHOOK_SECRET")),
    }
