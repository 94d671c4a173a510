from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.pagination import DEFAULT_LIMIT, paginate
from app.deps import Services, get_current_user, get_services
from app.models.user import User

router = APIRouter()


class TransferRequest(BaseModel):
    to_user_id: str
    amount: int = Field(..., gt=0)
    message: str | None = Field(default=None, max_length=200)


@router.get("/balance")
async def wallet_balance(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    """Return current coin balance."""
    coins = await services.wallet.get_balance(user.id)
    return {"coins": coins, "formatted": f"{coins} coins"}


@router.get("/transactions")
async def wallet_transactions(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
):
    """Return ledger entries for current user (newest first)."""
    page, limit = paginate(page, limit)
    return await services.wallet.get_transaction_history(user.id, page=page, limit=limit)


@router.get("/statistics")
async def wallet_statistics(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.wallet.get_coin_statistics(user.id)


@router.get("/packages")
async def wallet_packages(services: Services = Depends(get_services)):
    """Recharge packages with bonus coins."""
    return {"packages": services.wallet.get_recharge_packages()}


@router.post("/transfer")
async def wallet_transfer(
    body: TransferRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Gift coins to another user."""
    sender_balance, _ = await services.wallet.transfer(user.id, body.to_user_id, body.amount, body.message)
    return {"success": True, "new_balance": sender_balance}
