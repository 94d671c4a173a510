from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.pagination import DEFAULT_LIMIT, paginate
from app.deps import Services, get_current_user, get_services
from app.models.user import User

router = APIRouter()


class HostApplicationRequest(BaseModel):
    documents: list[str] = Field(..., min_length=1, max_length=5)


class WithdrawalRequest(BaseModel):
    amount: float = Field(..., gt=0)
    method: str = Field(..., pattern="^(upi|bank_transfer)$")
    upi_id: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    account_holder_name: str | None = None


class RatingRequest(BaseModel):
    call_id: str
    rating: int = Field(..., ge=1, le=5)
    feedback: str | None = Field(default=None, max_length=500)


@router.post("/apply")
async def apply_as_host(
    body: HostApplicationRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Submit verification documents (uploaded URLs) for host review."""
    return await services.hosts.apply_as_host(user.id, body.documents)


@router.get("/dashboard")
async def host_dashboard(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.hosts.get_host_dashboard(user.id)


@router.get("/earnings")
async def host_earnings(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
):
    page, limit = paginate(page, limit)
    return await services.hosts.get_earnings_history(user.id, page=page, limit=limit)


@router.post("/withdrawals")
async def request_withdrawal(
    body: WithdrawalRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Request a payout from available balance; funds are held until an admin processes it."""
    withdrawal = await services.hosts.request_withdrawal(
        user.id,
        body.amount,
        body.method,
        body.model_dump(include={"upi_id", "account_number", "ifsc_code", "account_holder_name"}),
    )
    return {
        "id": withdrawal.id,
        "amount": withdrawal.amount,
        "method": withdrawal.method,
        "status": withdrawal.status.value,
        "requested_at": withdrawal.requested_at.isoformat(),
    }


@router.post("/{host_id}/ratings")
async def rate_host(
    host_id: str,
    body: RatingRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await services.hosts.rate_host(host_id, body.call_id, user.id, body.rating, body.feedback)
