"""Razorpay checkout for coin recharges and premium plans: order creation, verification and webhook, applied once per order."""

import json
from datetime import datetime
from dataclasses import dataclass
from typing import Any

from app.core.audit import log_event
from app.core.config import Settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.core.security import verify_razorpay_payment, verify_razorpay_webhook
from app.models.enums import PaymentStatus, ProductType, TransactionKind
from app.models.payment_order import PaymentOrder
from app.models.transaction import Transaction
from app.services.wallet import RECHARGE_PACKAGES, WalletService
from app.stores.base import Store

log = get_logger(__name__)


@dataclass(frozen=True)
class PremiumPlan:
    amount: int  # INR
    days: int


PREMIUM_PLANS = {
    ProductType.PREMIUM_MONTHLY: PremiumPlan(amount=299, days=30),
    ProductType.PREMIUM_YEARLY: PremiumPlan(amount=2499, days=365),
}


def build_razorpay_client(settings: Settings) -> Any:
    import razorpay
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))


class PaymentService:
    def __init__(self, store: Store, settings: Settings, client: Any | None = None):
        self.store = store
        self.settings = settings
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.settings.razorpay_key_id or not self.settings.razorpay_key_secret:
                raise BadRequestError("Payments not configured")
            self._client = build_razorpay_client(self.settings)
        return self._client

    def get_pricing(self) -> dict:
        return {
            "coin_packages": WalletService.get_recharge_packages(),
            "premium_plans": [
                {"product_type": product.value, "amount": plan.amount, "days": plan.days}
                for product, plan in PREMIUM_PLANS.items()
            ],
        }

    async def create_order(
        self, user_id: str, package_index: int | None = None, product_type: ProductType = ProductType.COINS
    ) -> dict:
        """Create a Razorpay order for a recharge package or a premium plan; the app opens checkout with it."""
        if product_type == ProductType.COINS:
            if package_index is None or package_index < 0 or package_index >= len(RECHARGE_PACKAGES):
                raise BadRequestError("Invalid coin package selected")
            package = RECHARGE_PACKAGES[package_index]
            amount, coins, days = package.amount, package.total_coins, None
        else:
            plan = PREMIUM_PLANS[product_type]
            amount, coins, days = plan.amount, 0, plan.days
        if await self.store.get_user(user_id) is None:
            raise NotFoundError("User not found")

        amount_paise = amount * 100
        notes = {"user_id": user_id, "product_type": product_type.value}
        if days is None:
            notes["coins"] = coins
        else:
            notes["days"] = days
        order = self.client.order.create({"amount": amount_paise, "currency": "INR", "notes": notes})
        await self.store.insert_payment_order(
            PaymentOrder(
                order_id=order["id"],
                user_id=user_id,
                amount_paise=amount_paise,
                currency=order.get("currency", "INR"),
                product_type=product_type,
                coins=coins,
            )
        )
        log.info(
            "payment_order_created",
            user_id=user_id,
            order_id=order["id"],
            product_type=product_type.value,
            coins=coins,
        )
        result = {
            "order_id": order["id"],
            "amount": order["amount"],
            "currency": order.get("currency", "INR"),
            "product_type": product_type.value,
            "key_id": self.settings.razorpay_key_id,
        }
        if days is None:
            result["coins"] = coins
        else:
            result["days"] = days
        return result

    async def verify_payment(self, user_id: str, order_id: str, payment_id: str, signature: str) -> dict:
        """Checkout callback: verify signature, then apply the order (idempotent)."""
        if not verify_razorpay_payment(order_id, payment_id, signature, self.settings.razorpay_key_secret):
            raise BadRequestError("Invalid payment signature")
        order = await self.store.get_payment_order(order_id)
        if order is None or order.user_id != user_id:
            raise NotFoundError("Transaction not found")
        if order.status == PaymentStatus.PAID:
            raise BadRequestError("Transaction already completed")
        result = await self._apply_order(order, payment_id)
        if result is None:
            raise BadRequestError("Transaction already completed")
        return result

    async def handle_webhook(self, payload: bytes, signature: str) -> None:
        """Verify HMAC; apply payment.captured / payment.failed idempotently, log subscription.cancelled."""
        if not self.settings.razorpay_webhook_secret:
            raise BadRequestError("Webhook secret not configured")
        if not verify_razorpay_webhook(payload, signature, self.settings.razorpay_webhook_secret):
            raise BadRequestError("Invalid webhook signature")
        data = json.loads(payload.decode())
        event = data.get("event")
        if event == "subscription.cancelled":
            subscription = data.get("payload", {}).get("subscription", {}).get("entity", {})
            log.info("subscription_cancelled_webhook", subscription_id=subscription.get("id"))
            return
        payment = data.get("payload", {}).get("payment", {}).get("entity", {})
        order_id = payment.get("order_id")
        payment_id = payment.get("id")
        if not order_id:
            log.info("payment_webhook_ignored", webhook_event=event)
            return
        order = await self.store.get_payment_order(order_id)
        if order is None:
            log.warning("payment_webhook_unknown_order", order_id=order_id, webhook_event=event)
            return
        if event == "payment.captured":
            await self._apply_order(order, payment_id)
        elif event == "payment.failed":
            if await self.store.fail_payment_order(order_id, payment_id):
                log.info("payment_failed", order_id=order_id, payment_id=payment_id)
        else:
            log.info("payment_webhook_ignored", webhook_event=event, order_id=order_id)

    async def _apply_order(self, order: PaymentOrder, payment_id: str) -> dict | None:
        if order.product_type == ProductType.COINS:
            balance = await self._credit_order(order, payment_id)
            if balance is None:
                return None
            return {"coins_added": order.coins, "new_balance": balance}
        premium_until = await self._activate_premium(order, payment_id)
        if premium_until is None:
            return None
        return {"product_type": order.product_type.value, "is_premium": True, "premium_until": premium_until}

    async def _credit_order(self, order: PaymentOrder, payment_id: str) -> int | None:
        entry = Transaction(
            user_id=order.user_id,
            kind=TransactionKind.PURCHASE,
            coins=order.coins,
            amount=order.amount_paise,
            description=f"Coin recharge - {order.coins} coins",
            metadata={"order_id": order.order_id, "payment_id": payment_id},
        )
        balance = await self.store.complete_payment_order(order.order_id, payment_id, entry)
        if balance is None:
            log.info("payment_already_applied", order_id=order.order_id, payment_id=payment_id)
            return None
        await log_event(
            self.store,
            order.user_id,
            "payment_captured",
            "payment",
            payment_id,
            {"order_id": order.order_id, "amount_paise": order.amount_paise, "coins": order.coins},
        )
        log.info("payment_captured", user_id=order.user_id, order_id=order.order_id, coins=order.coins)
        return balance

    async def _activate_premium(self, order: PaymentOrder, payment_id: str) -> datetime | None:
        plan = PREMIUM_PLANS[order.product_type]
        premium_until = await self.store.complete_premium_order(order.order_id, payment_id, plan.days)
        if premium_until is None:
            log.info("payment_already_applied", order_id=order.order_id, payment_id=payment_id)
            return None
        await log_event(
            self.store,
            order.user_id,
            "premium_activated",
            "payment",
            payment_id,
            {
                "order_id": order.order_id,
                "amount_paise": order.amount_paise,
                "product_type": order.product_type.value,
                "premium_until": premium_until.isoformat(),
            },
        )
        log.info(
            "premium_activated",
            user_id=order.user_id,
            order_id=order.order_id,
            product_type=order.product_type.value,
        )
        return premium_until

    # ── subscription ─────────────────────────────────────────────────────

    async def get_subscription(self, user_id: str) -> dict:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        active = user.has_premium()
        return {"is_premium": active, "premium_until": user.premium_until if active else None}

    async def cancel_subscription(self, user_id: str) -> dict:
        """End premium now. No refund; the remaining paid period is forfeited."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.has_premium():
            raise BadRequestError("No active subscription found")
        await self.store.update_user(user_id, {"is_premium": False, "premium_until": None})
        await log_event(
            self.store,
            user_id,
            "subscription_cancelled",
            "user",
            user_id,
            {"premium_until": user.premium_until.isoformat()},
        )
        log.info("subscription_cancelled", user_id=user_id)
        return {"is_premium": False, "premium_until": None}
