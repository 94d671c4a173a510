"""Coin wallet: balance reads and atomic ledger-backed credit, debit and transfer."""

import math
from dataclasses import dataclass
from typing import Any

from app.core.config import Settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.enums import CallType, ChargePurpose, TransactionKind
from app.models.transaction import Transaction
from app.stores.base import Store

log = get_logger(__name__)

CREDIT_KINDS = (TransactionKind.PURCHASE, TransactionKind.BONUS, TransactionKind.REFUND, TransactionKind.ADMIN)


@dataclass(frozen=True)
class RechargePackage:
    coins: int
    amount: int  # INR
    bonus: int = 0

    @property
    def total_coins(self) -> int:
        return self.coins + self.bonus


RECHARGE_PACKAGES = (
    RechargePackage(coins=200, amount=49),
    RechargePackage(coins=500, amount=99, bonus=100),
    RechargePackage(coins=1000, amount=199, bonus=300),
    RechargePackage(coins=1500, amount=299, bonus=500),
    RechargePackage(coins=2000, amount=399, bonus=800),
    RechargePackage(coins=3000, amount=599, bonus=1500),
    RechargePackage(coins=4000, amount=799, bonus=2400),
    RechargePackage(coins=6000, amount=999, bonus=4000),
)


@dataclass(frozen=True)
class CallCost:
    duration_seconds: int
    duration_minutes: int
    rate_per_minute: int
    total_coins: int


class WalletService:
    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    async def get_balance(self, user_id: str) -> int:
        balance = await self.store.get_balance(user_id)
        if balance is None:
            raise NotFoundError("User not found")
        return balance

    async def credit(
        self,
        user_id: str,
        amount: int,
        kind: TransactionKind,
        description: str,
        metadata: dict[str, Any] | None = None,
        money_amount: int = 0,
    ) -> int:
        """Add coins and append a +amount ledger entry. Returns the new balance."""
        if amount <= 0:
            raise BadRequestError("Amount must be positive")
        if kind not in CREDIT_KINDS:
            raise BadRequestError(f"Invalid credit kind: {kind.value}")
        entry = Transaction(
            user_id=user_id,
            kind=kind,
            coins=amount,
            amount=money_amount,
            description=description,
            metadata=metadata or {},
        )
        balance = await self.store.apply_coin_entry(entry)
        log.info("coins_credited", user_id=user_id, coins=amount, kind=kind.value, balance=balance)
        return balance

    async def debit(
        self,
        user_id: str,
        amount: int,
        purpose: ChargePurpose,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """
        Remove coins and append a -amount ledger entry. Returns the new balance.
        Raises InsufficientFundsError when the balance is short, NotFoundError for unknown users.
        """
        if amount <= 0:
            raise BadRequestError("Amount must be positive")
        entry = Transaction(
            user_id=user_id,
            kind=TransactionKind.DEBIT,
            coins=-amount,
            description=description,
            metadata={"purpose": purpose.value, **(metadata or {})},
        )
        balance = await self.store.apply_coin_entry(entry)
        log.info("coins_debited", user_id=user_id, coins=amount, purpose=purpose.value, balance=balance)
        return balance

    async def transfer(
        self, from_user_id: str, to_user_id: str, amount: int, message: str | None = None
    ) -> tuple[int, int]:
        """Gift coins: one debit and one credit as a single unit. Returns (sender, receiver) balances."""
        if from_user_id == to_user_id:
            raise BadRequestError("Cannot transfer coins to yourself")
        if amount <= 0:
            raise BadRequestError("Invalid transfer amount")
        sender = await self.store.get_user(from_user_id)
        if sender is None:
            raise NotFoundError("Sender not found")
        receiver = await self.store.get_user(to_user_id)
        if receiver is None:
            raise NotFoundError("Receiver not found")
        debit = Transaction(
            user_id=from_user_id,
            kind=TransactionKind.DEBIT,
            coins=-amount,
            description=f"Gift to {receiver.display_name or 'user'}",
            metadata={"purpose": ChargePurpose.GIFT.value, "to_user_id": to_user_id, "message": message},
        )
        credit = Transaction(
            user_id=to_user_id,
            kind=TransactionKind.BONUS,
            coins=amount,
            description=f"Gift from {sender.display_name or 'user'}",
            metadata={"from_user_id": from_user_id, "message": message},
        )
        balances = await self.store.apply_coin_transfer(debit, credit)
        log.info("coins_transferred", from_user_id=from_user_id, to_user_id=to_user_id, coins=amount)
        return balances

    def rate_per_minute(self, call_type: CallType) -> int:
        if call_type == CallType.AUDIO:
            return self.settings.audio_rate_per_minute
        if call_type == CallType.VIDEO:
            return self.settings.video_rate_per_minute
        raise BadRequestError(f"Unknown call type: {call_type}")

    def calculate_call_cost(self, call_type: CallType, duration_seconds: int) -> CallCost:
        """Every started minute is billed in full."""
        minutes = math.ceil(duration_seconds / 60)
        rate = self.rate_per_minute(call_type)
        return CallCost(
            duration_seconds=duration_seconds,
            duration_minutes=minutes,
            rate_per_minute=rate,
            total_coins=minutes * rate,
        )

    async def get_transaction_history(self, user_id: str, page: int = 1, limit: int = 50) -> dict:
        offset = (page - 1) * limit
        transactions = await self.store.list_transactions(user_id, offset=offset, limit=limit)
        total = await self.store.count_transactions(user_id)
        return {
            "transactions": [
                {
                    "id": t.id,
                    "kind": t.kind.value,
                    "coins": t.coins,
                    "amount": t.amount,
                    "balance_after": t.balance_after,
                    "description": t.description,
                    "metadata": t.metadata,
                    "created_at": t.created_at.isoformat(),
                    "is_credit": t.coins > 0,
                    "is_debit": t.coins < 0,
                }
                for t in transactions
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def get_coin_statistics(self, user_id: str) -> dict:
        balance = await self.get_balance(user_id)
        credited, debited = await self.store.coin_totals(user_id)
        return {
            "current_balance": balance,
            "total_earned": credited,
            "total_spent": debited,
            "net_balance": credited - debited,
        }

    @staticmethod
    def get_recharge_packages() -> list[dict]:
        return [
            {
                "index": i,
                "coins": pkg.coins,
                "amount": pkg.amount,
                "bonus": pkg.bonus,
                "total_coins": pkg.total_coins,
                "per_coin_cost": pkg.amount / pkg.total_coins,
                "savings": f"{round(pkg.bonus / pkg.coins * 100)}% bonus" if pkg.bonus else None,
            }
            for i, pkg in enumerate(RECHARGE_PACKAGES)
        ]
