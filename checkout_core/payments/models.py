"""
Payment data models shared by every payment engine.

Field names are snake_case; camelCase aliases (``cardNumber``, ...) are
accepted on input so checkout forms can post their payloads unchanged.
"""
from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PaymentIntentStatus = Literal[
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
    "succeeded",
    "canceled",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaymentMethod(_CamelModel):
    """Payment instrument submitted at checkout."""

    type: Literal["card", "paypal", "apple_pay"] = "card"
    card_number: Optional[str] = None
    expiry_date: Optional[str] = Field(default=None, description="MM/YY")
    cvv: Optional[str] = None
    cardholder_name: Optional[str] = None


class PaymentReceipt(_CamelModel):
    payment_id: str
    amount: float
    currency: str
    method: PaymentMethod
    timestamp: datetime
    last4: Optional[str] = None
    brand: Optional[str] = None
    is_demo_transaction: bool


class PaymentResult(_CamelModel):
    """
    Outcome of a payment attempt.

    Declines are reported here with ``success=False`` rather than raised,
    so checkout code can branch on the result.
    """

    success: bool
    payment_id: str
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    receipt: Optional[PaymentReceipt] = None
    processing_time: Optional[float] = Field(default=None, description="Milliseconds")


class PaymentIntent(_CamelModel):
    id: str
    amount: float
    currency: str
    status: PaymentIntentStatus
    client_secret: Optional[str] = None


class PaymentMethodValidation(BaseModel):
    """Validation verdict with one message per offending field."""

    valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)


class DemoScenario(_CamelModel):
    name: str
    card_number: str
    description: str
    expected_result: Literal["success", "failure"]
