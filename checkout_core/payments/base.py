"""Contract every payment engine satisfies."""
from typing import List, Protocol, runtime_checkable

from .models import PaymentIntent, PaymentMethod, PaymentMethodValidation, PaymentResult


@runtime_checkable
class PaymentService(Protocol):
    """
    Payment engine contract.

    Engines are selected by mode through ``PaymentServiceFactory`` and do
    not share a base class.
    """

    async def process_payment(self, amount: float, method: PaymentMethod) -> PaymentResult:
        ...

    async def create_payment_intent(self, amount: float, currency: str = "USD") -> PaymentIntent:
        ...

    async def confirm_payment(self, intent_id: str, method: PaymentMethod) -> PaymentResult:
        ...

    async def get_payment_methods(self) -> List[PaymentMethod]:
        ...

    def is_demo(self) -> bool:
        ...

    def validate_payment_method(self, method: PaymentMethod) -> PaymentMethodValidation:
        ...
