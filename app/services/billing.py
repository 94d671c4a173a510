"""Coin charge for a finished call."""

import math
from dataclasses import dataclass

from app.core.config import Settings
from app.core.exceptions import InsufficientFundsError, NotFoundError
from app.core.logging import get_logger
from app.models.enums import CallType, ChargePurpose, TransactionKind
from app.models.transaction import Transaction
from app.services.wallet import WalletService
from app.stores.base import Store

log = get_logger(__name__)

_PURPOSE = {
    CallType.AUDIO: ChargePurpose.AUDIO_CALL,
    CallType.VIDEO: ChargePurpose.VIDEO_CALL,
}


@dataclass(frozen=True)
class CallCharge:
    coins_charged: int
    original_cost: int
    discount: int
    new_balance: int


class CallBillingService:
    def __init__(self, store: Store, wallet: WalletService, settings: Settings):
        self.store = store
        self.wallet = wallet
        self.settings = settings

    async def charge_for_call(
        self, user_id: str, call_type: CallType, duration_seconds: int, call_id: str
    ) -> CallCharge:
        """
        Debit the caller and stamp coins_charged on the call as one unit.

        Premium callers pay half, rounded up. Raises InsufficientFundsError
        without touching the balance or the call when the caller cannot pay,
        and ConflictError (nothing debited) when the call was already charged.
        """
        cost = self.wallet.calculate_call_cost(call_type, duration_seconds)
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")

        is_premium = user.has_premium()
        final_cost = cost.total_coins
        if is_premium:
            final_cost = math.ceil(cost.total_coins * self.settings.premium_discount)

        if user.coins < final_cost:
            raise InsufficientFundsError(
                "Insufficient coins for this call",
                details={"balance": user.coins, "required": final_cost, "call_id": call_id},
            )

        label = "Audio" if call_type == CallType.AUDIO else "Video"
        entry = Transaction(
            user_id=user_id,
            kind=TransactionKind.DEBIT,
            coins=-final_cost,
            description=f"{label} call - {cost.duration_minutes} min",
            metadata={
                "purpose": _PURPOSE[call_type].value,
                "call_id": call_id,
                "call_type": call_type.value,
                "duration_seconds": duration_seconds,
                "rate": cost.rate_per_minute,
                "is_premium": is_premium,
            },
        )
        new_balance = await self.store.charge_call(entry, call_id)
        log.info("call_charged", call_id=call_id, user_id=user_id, coins=final_cost, original_cost=cost.total_coins)

        return CallCharge(
            coins_charged=final_cost,
            original_cost=cost.total_coins,
            discount=cost.total_coins - final_cost,
            new_balance=new_balance,
        )
