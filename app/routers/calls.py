from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.pagination import DEFAULT_LIMIT, paginate
from app.deps import Services, get_current_user, get_services
from app.models.enums import CallStatus, CallType
from app.models.user import User

router = APIRouter()


class InitiateCallRequest(BaseModel):
    receiver_id: str
    call_type: CallType


class CallStatusRequest(BaseModel):
    status: CallStatus
    duration: int | None = Field(default=None, ge=0, description="Seconds, required for billing on completed")


@router.post("")
async def initiate_call(
    body: InitiateCallRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    call = await services.calls.initiate_call(user.id, body.receiver_id, body.call_type)
    return {"call_id": call.id, "room_name": call.room_name, "status": call.status.value}


@router.post("/{call_id}/status")
async def update_call_status(
    call_id: str,
    body: CallStatusRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Report a call state change; completing with a duration bills the caller."""
    call = await services.calls.on_call_status_changed(call_id, body.status, body.duration, acting_user_id=user.id)
    return call.model_dump(mode="json", exclude={"revision_id"})


@router.get("")
async def call_logs(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
):
    page, limit = paginate(page, limit)
    return await services.calls.get_call_logs(user.id, page=page, limit=limit)


@router.get("/stats")
async def call_stats(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.calls.get_call_stats(user.id)


@router.get("/{call_id}")
async def get_call(call_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    call = await services.calls.get_call(call_id, user.id)
    return call.model_dump(mode="json", exclude={"revision_id"})
