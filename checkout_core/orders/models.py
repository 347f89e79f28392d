"""Order models used by the progression engine."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# CANCELLED and REFUNDED are only reached by explicit action
STATUS_PROGRESSION = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


class Order(BaseModel):
    """
    Order record as returned by the order API.

    Only the fields the engine needs are declared; everything else the
    API sends is kept as extra data.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    status: OrderStatus
    payment_method: Optional[str] = None
    total: Optional[float] = None
    updated_at: Optional[datetime] = None


class OrderStatusChange(BaseModel):
    order: Order
    previous_status: OrderStatus
    new_status: OrderStatus
    changed_at: datetime
