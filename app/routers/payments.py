from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel, Field

from app.deps import Services, get_current_user, get_services
from app.models.enums import ProductType
from app.models.user import User

router = APIRouter()


class CreateOrderRequest(BaseModel):
    product_type: ProductType = ProductType.COINS
    package_index: int | None = Field(default=None, ge=0)  # required for coins


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


@router.get("/pricing")
async def get_pricing(services: Services = Depends(get_services)):
    return services.payments.get_pricing()


@router.post("/orders")
async def create_order(
    body: CreateOrderRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create Razorpay order for a recharge package or premium plan; frontend uses order_id for checkout."""
    return await services.payments.create_order(user.id, body.package_index, body.product_type)


@router.post("/verify")
async def verify_payment(
    body: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Checkout success callback: verify signature, then credit coins or activate premium."""
    return await services.payments.verify_payment(
        user.id, body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature
    )


@router.post("/webhook")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str = Header(..., alias="X-Razorpay-Signature"),
    services: Services = Depends(get_services),
):
    """Razorpay webhook: payment.captured -> apply the order (idempotent)."""
    body = await request.body()
    await services.payments.handle_webhook(body, x_razorpay_signature)
    return {"status": "ok"}


@router.get("/subscription")
async def get_subscription(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await services.payments.get_subscription(user.id)


@router.post("/subscription/cancel")
async def cancel_subscription(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """End premium immediately."""
    return await services.payments.cancel_subscription(user.id)
