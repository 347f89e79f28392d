"""
Stripe API gateway with retry logic and error classification.

Implements:
- Exponential backoff for transient and rate-limit errors
- Circuit breaker pattern
- Per-call API keys so several configurations can coexist
- Webhook signature verification
"""
import asyncio
import functools
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import PaymentGatewayError, WebhookError
from ..monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class StripeErrorType(Enum):
    """How a failed Stripe call should be treated."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"  # declines, bad requests, bad keys
    RATE_LIMIT = "rate_limit"


class StripeGatewayError(PaymentGatewayError):
    """Classified Stripe failure."""

    def __init__(
        self,
        message: str,
        error_type: StripeErrorType,
        original_error: Optional[Exception] = None,
        decline_code: Optional[str] = None,
    ):
        """
        Args:
            message: User facing text for card errors, SDK text otherwise
            error_type: Retry classification
            original_error: Exception raised by the SDK
            decline_code: Card decline code when Stripe reported one
        """
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error
        self.decline_code = decline_code

    @property
    def retryable(self) -> bool:
        return self.error_type in (StripeErrorType.TRANSIENT, StripeErrorType.RATE_LIMIT)


_PERMANENT_ERRORS = (
    stripe.CardError,
    stripe.InvalidRequestError,
    stripe.AuthenticationError,
    stripe.PermissionError,
)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, StripeGatewayError) and error.retryable


class CircuitBreaker:
    """
    Stops calling Stripe after repeated failures.

    States go closed -> open after ``failure_threshold`` consecutive
    failures, open -> half_open once ``timeout`` seconds have passed,
    and half_open -> closed after ``success_threshold`` successes.
    Card declines and invalid requests do not count as failures.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: int = 60,
        success_threshold: int = 2,
        ignored_errors: Tuple[Type[Exception], ...] = (
            stripe.CardError,
            stripe.InvalidRequestError,
        ),
    ):
        """
        Args:
            failure_threshold: Consecutive failures that open the breaker
            timeout: Seconds an open breaker waits before a trial call
            success_threshold: Trial successes that close it again
            ignored_errors: Exceptions re-raised without being counted
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.ignored_errors = ignored_errors
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        self.state = "closed"

    def _set_state(self, state: str) -> None:
        self.state = state
        metrics.set_circuit_breaker_state(state)

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run ``func`` unless the breaker is open.

        Raises:
            StripeGatewayError: Transient error while the breaker is open
        """
        if self.state == "open":
            if self.opened_at is not None and time.time() - self.opened_at >= self.timeout:
                self._set_state("half_open")
                self.success_count = 0
                logger.info("stripe_circuit_half_open")
            else:
                raise StripeGatewayError(
                    "Stripe temporarily unavailable (circuit open)", StripeErrorType.TRANSIENT
                )

        try:
            outcome = func(*args, **kwargs)
        except self.ignored_errors:
            raise
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return outcome

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state != "half_open":
            return
        self.success_count += 1
        if self.success_count >= self.success_threshold:
            self._set_state("closed")
            logger.info("stripe_circuit_closed")

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            self.opened_at = time.time()
            self._set_state("open")
            logger.warning("stripe_circuit_opened", failure_count=self.failure_count)


class StripeGateway:
    """
    Async facade over the synchronous Stripe SDK.

    SDK calls run in the default executor behind the circuit breaker.
    Every Stripe exception is converted to a classified
    ``StripeGatewayError``; intent creation and charges are retried on
    transient and rate-limit errors.
    """

    def __init__(
        self,
        secret_key: str,
        api_version: str = "2023-10-16",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Args:
            secret_key: Stripe secret key (sk_...)
            api_version: Stripe API version sent with every request
            circuit_breaker: Breaker shared across calls
        """
        self._secret_key = secret_key
        self.api_version = api_version
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        logger.info(
            "stripe_gateway_initialized",
            api_version=api_version,
            test_mode=secret_key.startswith("sk_test_"),
        )

    @property
    def _request_options(self) -> Dict[str, str]:
        return {"api_key": self._secret_key, "stripe_version": self.api_version}

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        if isinstance(error, _PERMANENT_ERRORS):
            return StripeErrorType.PERMANENT
        # connection, server-side and unrecognised errors
        return StripeErrorType.TRANSIENT

    def _to_gateway_error(self, error: stripe.StripeError) -> StripeGatewayError:
        error_type = self._classify_error(error)
        metrics.record_stripe_api_error(error_type.value)

        logger.error(
            "stripe_api_error",
            error_type=error_type.value,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )

        message = getattr(error, "user_message", None) or str(error)
        return StripeGatewayError(
            message=message,
            error_type=error_type,
            original_error=error,
            decline_code=getattr(error, "decline_code", None),
        )

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        started = time.time()
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None,
                functools.partial(self.circuit_breaker.call, func, **kwargs, **self._request_options),
            )
        except stripe.StripeError as e:
            metrics.record_stripe_api_call(operation, "error", time.time() - started)
            raise self._to_gateway_error(e)

        metrics.record_stripe_api_call(operation, "success", time.time() - started)
        return result

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        reraise=True,
    )
    async def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> stripe.PaymentIntent:
        """
        Create an unconfirmed PaymentIntent.

        Args:
            amount_cents: Amount in the smallest currency unit
            currency: ISO currency code, any case
            metadata: Stored on the intent
            idempotency_key: Forwarded to Stripe to deduplicate retries

        Raises:
            StripeGatewayError: After retries are exhausted or on a permanent error
        """
        logger.info("creating_payment_intent", amount_cents=amount_cents, currency=currency)

        params: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        payment_intent = await self._call("create_intent", stripe.PaymentIntent.create, **params)
        logger.info(
            "payment_intent_created",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        reraise=True,
    )
    async def charge(
        self,
        amount_cents: int,
        currency: str,
        payment_method_data: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> stripe.PaymentIntent:
        """
        Create and confirm a PaymentIntent in one request.

        Raises:
            StripeGatewayError: Declines carry Stripe's user-facing message
        """
        logger.info("charging_card", amount_cents=amount_cents, currency=currency)

        payment_intent = await self._call(
            "charge",
            stripe.PaymentIntent.create,
            amount=amount_cents,
            currency=currency.lower(),
            payment_method_data=payment_method_data,
            payment_method_types=["card"],
            confirm=True,
            metadata=metadata or {},
        )
        logger.info(
            "card_charged",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    async def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method_data: Optional[Dict[str, Any]] = None,
    ) -> stripe.PaymentIntent:
        """Confirm an existing intent, optionally attaching inline card data. Not retried."""
        logger.info("confirming_payment_intent", payment_intent_id=payment_intent_id)

        params: Dict[str, Any] = {}
        if payment_method_data:
            params["payment_method_data"] = payment_method_data

        payment_intent = await self._call(
            "confirm_intent",
            functools.partial(stripe.PaymentIntent.confirm, payment_intent_id),
            **params,
        )
        logger.info(
            "payment_intent_confirmed",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )
        return payment_intent

    async def list_payment_methods(self, customer_id: str, limit: int = 10) -> Any:
        """
        List a customer's saved card payment methods.

        Raises:
            StripeGatewayError: If listing fails
        """
        logger.info("listing_payment_methods", customer_id=customer_id)
        return await self._call(
            "list_payment_methods",
            stripe.PaymentMethod.list,
            customer=customer_id,
            type="card",
            limit=limit,
        )

    @staticmethod
    def verify_webhook(
        payload: Union[str, bytes], signature: str, secret: str
    ) -> stripe.Event:
        """
        Check a Stripe-Signature header against the signing secret.

        Raises:
            WebhookError: Bad signature, stale timestamp or unreadable payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe_webhook_signature_invalid", error=str(e))
            raise WebhookError(f"Invalid Stripe signature: {str(e)}")
        except ValueError as e:
            logger.warning("stripe_webhook_payload_invalid", error=str(e))
            raise WebhookError(f"Invalid webhook payload: {str(e)}")

        logger.info(
            "stripe_webhook_verified",
            event_id=event.id,
            event_type=event.type,
        )
        return event
