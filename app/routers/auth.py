from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from app.core.security import SESSION_MAX_AGE_SECONDS, create_session_cookie
from app.deps import SESSION_COOKIE_NAME, Services, get_current_user, get_services
from app.models.user import User

router = APIRouter()


class RegisterRequest(BaseModel):
    phone_number: str = Field(..., min_length=6, max_length=20)
    display_name: str = Field(default="", max_length=50)


def _user_out(user: User) -> dict:
    return {
        "id": user.id,
        "phone_number": user.phone_number,
        "display_name": user.display_name,
        "coins": user.coins,
        "is_premium": user.has_premium(),
        "premium_until": user.premium_until,
        "is_host": user.is_host,
        "role": user.role,
    }


@router.post("/register")
async def register(body: RegisterRequest, response: Response, services: Services = Depends(get_services)):
    """Create an account with the welcome bonus and set the session cookie."""
    user = await services.users.register(body.phone_number, body.display_name)
    session_value = create_session_cookie({"user_id": user.id, "session_version": user.session_version})
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_value,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        secure=False,  # set True in prod with HTTPS
        samesite="lax",
        path="/",
    )
    return {"user": _user_out(user)}


@router.get("/me")
async def auth_me(user: User = Depends(get_current_user)):
    """Return current user. Requires session cookie."""
    return _user_out(user)


@router.post("/logout")
async def logout(
    response: Response,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Invalidate every outstanding session for the user."""
    await services.store.update_user(user.id, {"session_version": user.session_version + 1})
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}
