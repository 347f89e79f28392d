"""
Pydantic schemas for API request/response models.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..orders.models import Order
from ..payments.models import PaymentMethod, PaymentReceipt


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessPaymentRequest(_Schema):
    """Request schema for charging a payment method."""

    amount: float = Field(..., gt=0, description="Amount in major currency units")
    payment_method: PaymentMethod = Field(..., description="Card or wallet details")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "amount": 129.99,
                    "paymentMethod": {
                        "type": "card",
                        "cardNumber": "4111111111111111",
                        "expiryDate": "12/30",
                        "cvv": "123",
                        "cardholderName": "Demo User",
                    },
                }
            ]
        },
    )


class ProcessPaymentResponse(_Schema):
    success: bool
    payment_id: str
    transaction_id: Optional[str] = None
    receipt: Optional[PaymentReceipt] = None
    processing_time: Optional[float] = None
    is_demo: bool


class CreatePaymentIntentRequest(_Schema):
    amount: float = Field(..., gt=0, description="Amount in major currency units")
    currency: str = Field(default="USD", min_length=3, max_length=3)


class WebhookResponse(BaseModel):
    success: bool
    event_type: Optional[str] = None
    events_processed: Optional[int] = None


class AutoAdvanceRequest(_Schema):
    order: Order


class AutoAdvanceResponse(_Schema):
    order_id: str
    scheduled: bool
    next_update_at: Optional[str] = None


class IntegrationStatusResponse(BaseModel):
    services: Dict[str, Dict[str, Any]]
    config: Dict[str, Any]


class HealthCheckResponse(BaseModel):
    status: str
    checks: Dict[str, Any] = Field(default_factory=dict)


class ScheduledOrdersResponse(_Schema):
    order_ids: List[str]
