"""Admin actions on wallets and host withdrawals. Every action is audited."""

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.models.enums import ChargePurpose, TransactionKind, WithdrawalStatus
from app.models.withdrawal import Withdrawal
from app.services.wallet import WalletService
from app.stores.base import Store

log = get_logger(__name__)


class AdminService:
    def __init__(self, store: Store, wallet: WalletService):
        self.store = store
        self.wallet = wallet

    async def adjust_coins(self, admin_id: str, user_id: str, coins: int, reason: str) -> int:
        """Positive coins credit (kind admin), negative coins debit. Returns the new balance."""
        if coins == 0:
            raise BadRequestError("Adjustment cannot be zero")
        if not reason.strip():
            raise BadRequestError("Reason is required")
        description = f"Admin adjustment: {reason}"
        metadata = {"admin_id": admin_id}
        if coins > 0:
            balance = await self.wallet.credit(user_id, coins, TransactionKind.ADMIN, description, metadata)
        else:
            balance = await self.wallet.debit(user_id, -coins, ChargePurpose.OTHER, description, metadata)
        await log_event(self.store, admin_id, "coins_adjusted", "user", user_id, {"coins": coins, "reason": reason})
        log.info("coins_adjusted", admin_id=admin_id, user_id=user_id, coins=coins)
        return balance

    async def list_withdrawals(self, status: WithdrawalStatus | None = None) -> list[Withdrawal]:
        return await self.store.list_withdrawals(statuses=[status] if status else None)

    async def process_withdrawal(
        self, admin_id: str, withdrawal_id: str, approve: bool, reason: str | None = None
    ) -> Withdrawal:
        existing = await self.store.get_withdrawal(withdrawal_id)
        if existing is None:
            raise NotFoundError("Withdrawal not found")
        if not approve and not reason:
            raise BadRequestError("Rejection reason is required")
        status = WithdrawalStatus.COMPLETED if approve else WithdrawalStatus.REJECTED
        withdrawal = await self.store.settle_withdrawal(withdrawal_id, status, reason=None if approve else reason)
        if withdrawal is None:
            raise BadRequestError("Withdrawal already processed", details={"status": existing.status.value})
        await log_event(
            self.store,
            admin_id,
            "withdrawal_approved" if approve else "withdrawal_rejected",
            "withdrawal",
            withdrawal_id,
            {"amount": withdrawal.amount, "user_id": withdrawal.user_id, "reason": reason},
        )
        log.info("withdrawal_processed", withdrawal_id=withdrawal_id, status=status.value, admin_id=admin_id)
        return withdrawal
