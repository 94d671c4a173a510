from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import PaymentStatus, ProductType


class PaymentOrder(Record):
    """Razorpay order_id -> user and what it buys (coins or a premium plan), for verification and webhook attribution."""

    order_id: str
    user_id: str
    amount_paise: int
    currency: str = "INR"
    product_type: ProductType = ProductType.COINS
    coins: int = 0  # package coins + bonus; 0 for premium plans
    status: PaymentStatus = PaymentStatus.CREATED
    payment_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    paid_at: datetime | None = None
