"""
Demo payment engine.

Simulates a card processor without any network traffic:
- configurable latency before every outcome
- cards on the auto-fail list are always declined
- other cards succeed with the configured probability
- deterministic id formats so receipts look like real ones
"""
import asyncio
import random
import string
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import structlog

from ..config.models import DemoPaymentSettings
from ..monitoring.metrics import metrics
from . import cards
from .models import (
    DemoScenario,
    PaymentIntent,
    PaymentMethod,
    PaymentMethodValidation,
    PaymentReceipt,
    PaymentResult,
)

logger = structlog.get_logger(__name__)

DEMO_CARD_NUMBERS = (
    "4111111111111111",  # Visa
    "5555555555554444",  # Mastercard
    "378282246310005",  # Amex
    "6011111111111117",  # Discover
)

AUTO_FAIL_CARD_NUMBERS = (
    "4000000000000002",  # Card declined
    "4000000000009995",  # Insufficient funds
    "4000000000009987",  # Lost card
)

DEMO_ERROR_MESSAGES = (
    "Your card was declined.",
    "Insufficient funds.",
    "Your card has expired.",
    "Invalid card number.",
    "Transaction could not be processed.",
)

DEMO_SCENARIOS = (
    DemoScenario(
        name="Successful Payment",
        card_number="4111111111111111",
        description="Standard Visa card that will process successfully",
        expected_result="success",
    ),
    DemoScenario(
        name="Successful Mastercard",
        card_number="5555555555554444",
        description="Standard Mastercard that will process successfully",
        expected_result="success",
    ),
    DemoScenario(
        name="Successful Amex",
        card_number="378282246310005",
        description="American Express card that will process successfully",
        expected_result="success",
    ),
    DemoScenario(
        name="Card Declined",
        card_number="4000000000000002",
        description="This card will always be declined",
        expected_result="failure",
    ),
    DemoScenario(
        name="Insufficient Funds",
        card_number="4000000000009995",
        description="This card will fail due to insufficient funds",
        expected_result="failure",
    ),
    DemoScenario(
        name="Lost Card",
        card_number="4000000000009987",
        description="This card will fail as it has been reported lost",
        expected_result="failure",
    ),
)

# Charged when an intent id is unknown to this process
DEFAULT_CONFIRM_AMOUNT = 100.0

# Unconfirmed intents remembered for confirm_payment; oldest are forgotten first
MAX_TRACKED_INTENTS = 1000

_BASE36 = string.digits + string.ascii_lowercase


class DemoPaymentService:
    """Stochastic, delay-simulated payment engine for demo mode."""

    def __init__(
        self,
        settings: Optional[DemoPaymentSettings] = None,
        demo_card_numbers: Sequence[str] = DEMO_CARD_NUMBERS,
        auto_fail_card_numbers: Sequence[str] = AUTO_FAIL_CARD_NUMBERS,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize demo engine.

        Args:
            settings: Success rate, delay and failure simulation switch
            demo_card_numbers: Cards advertised as succeeding
            auto_fail_card_numbers: Cards that are always declined
            rng: Random source, injectable for deterministic tests
        """
        self.settings = settings or DemoPaymentSettings()
        self.demo_card_numbers = list(demo_card_numbers)
        self.auto_fail_card_numbers = list(auto_fail_card_numbers)
        self._rng = rng or random.Random()
        self._intent_amounts: "OrderedDict[str, float]" = OrderedDict()

    def is_demo(self) -> bool:
        return True

    def _random_suffix(self) -> str:
        return "".join(self._rng.choice(_BASE36) for _ in range(9))

    def _is_auto_fail(self, method: PaymentMethod) -> bool:
        if not method.card_number:
            return False
        return "".join(method.card_number.split()) in self.auto_fail_card_numbers

    async def process_payment(self, amount: float, method: PaymentMethod) -> PaymentResult:
        """
        Simulate a card charge.

        Args:
            amount: Amount in major currency units
            method: Payment method to charge

        Returns:
            PaymentResult: Success with a receipt, or a canned decline
        """
        delay = self.settings.processing_delay
        started = time.monotonic()
        await asyncio.sleep(delay / 1000)

        should_succeed = not self._is_auto_fail(method) and (
            not self.settings.enable_failure_simulation
            or self._rng.random() < self.settings.success_rate
        )

        now_ms = int(time.time() * 1000)
        payment_id = f"demo_{now_ms}_{self._random_suffix()}"
        metrics.record_payment("demo", should_succeed, time.monotonic() - started)

        if not should_succeed:
            error = self._rng.choice(DEMO_ERROR_MESSAGES)
            logger.info("demo_payment_declined", payment_id=payment_id, error=error)
            return PaymentResult(
                success=False,
                payment_id=payment_id,
                error=error,
                processing_time=delay,
            )

        receipt = PaymentReceipt(
            payment_id=payment_id,
            amount=amount,
            currency="USD",
            method=method,
            timestamp=datetime.now(timezone.utc),
            last4=cards.get_last4(method.card_number),
            brand=cards.get_card_brand(method.card_number or ""),
            is_demo_transaction=True,
        )
        logger.info("demo_payment_succeeded", payment_id=payment_id, amount=amount)
        return PaymentResult(
            success=True,
            payment_id=payment_id,
            transaction_id=f"txn_{now_ms}",
            receipt=receipt,
            processing_time=delay,
        )

    async def create_payment_intent(self, amount: float, currency: str = "USD") -> PaymentIntent:
        intent_id = f"pi_demo_{int(time.time() * 1000)}_{self._random_suffix()}"
        self._intent_amounts[intent_id] = amount
        while len(self._intent_amounts) > MAX_TRACKED_INTENTS:
            self._intent_amounts.popitem(last=False)
        return PaymentIntent(
            id=intent_id,
            amount=amount,
            currency=currency,
            status="requires_payment_method",
            client_secret=f"{intent_id}_secret_demo",
        )

    async def confirm_payment(self, intent_id: str, method: PaymentMethod) -> PaymentResult:
        amount = self._intent_amounts.pop(intent_id, DEFAULT_CONFIRM_AMOUNT)
        return await self.process_payment(amount, method)

    async def get_payment_methods(self) -> List[PaymentMethod]:
        expiry_year = (datetime.now(timezone.utc).year + 2) % 100
        return [
            PaymentMethod(
                type="card",
                card_number=self.demo_card_numbers[0] if self.demo_card_numbers else None,
                expiry_date=f"12/{expiry_year:02d}",
                cvv="123",
                cardholder_name="Demo User",
            )
        ]

    def validate_payment_method(self, method: PaymentMethod) -> PaymentMethodValidation:
        return cards.validate_payment_method(method)

    # Demo introspection

    def get_demo_card_numbers(self) -> Dict[str, List[str]]:
        return {
            "success": list(self.demo_card_numbers),
            "failure": list(self.auto_fail_card_numbers),
        }

    def get_demo_scenarios(self) -> List[DemoScenario]:
        return list(DEMO_SCENARIOS)

    def get_processing_stats(self) -> Dict[str, float]:
        # TODO: count processed transactions once demo stats are persisted
        return {
            "success_rate": self.settings.success_rate,
            "average_processing_time": self.settings.processing_delay,
            "total_transactions": 0,
        }
