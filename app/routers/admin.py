from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.deps import Services, get_services, require_admin
from app.models.enums import WithdrawalStatus
from app.models.user import User

router = APIRouter()


class RejectHostRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class AdjustCoinsRequest(BaseModel):
    coins: int
    reason: str = Field(..., min_length=1, max_length=200)


class ProcessWithdrawalRequest(BaseModel):
    approve: bool
    reason: str | None = None


@router.post("/hosts/{user_id}/approve")
async def approve_host(user_id: str, admin: User = Depends(require_admin), services: Services = Depends(get_services)):
    return await services.hosts.approve_host(user_id, admin.id)


@router.post("/hosts/{user_id}/reject")
async def reject_host(
    user_id: str,
    body: RejectHostRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await services.hosts.reject_host(user_id, body.reason, admin.id)


@router.post("/users/{user_id}/coins")
async def adjust_coins(
    user_id: str,
    body: AdjustCoinsRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Admin: credit (positive) or debit (negative) a user's coins through the ledger."""
    balance = await services.admin.adjust_coins(admin.id, user_id, body.coins, body.reason)
    return {"user_id": user_id, "new_balance": balance}


@router.get("/withdrawals")
async def list_withdrawals(
    status: WithdrawalStatus | None = None,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    withdrawals = await services.admin.list_withdrawals(status)
    return {"withdrawals": [w.model_dump(mode="json", exclude={"revision_id"}) for w in withdrawals]}


@router.post("/withdrawals/{withdrawal_id}/process")
async def process_withdrawal(
    withdrawal_id: str,
    body: ProcessWithdrawalRequest,
    admin: User = Depends(require_admin),
    services: Services = Depends(get_services),
):
    withdrawal = await services.admin.process_withdrawal(admin.id, withdrawal_id, body.approve, body.reason)
    return withdrawal.model_dump(mode="json", exclude={"revision_id"})
