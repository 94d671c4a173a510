"""Shared FastAPI dependencies and the service wiring they hand out."""

from dataclasses import dataclass

from fastapi import Request

from app.core.config import Settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.logging import bind_user_id
from app.core.security import load_session_cookie
from app.models.user import User
from app.services.admin import AdminService
from app.services.billing import CallBillingService
from app.services.calls import CallService
from app.services.hosts import HostService
from app.services.payments import PaymentService
from app.services.users import UserService
from app.services.wallet import WalletService
from app.stores.base import Store

SESSION_COOKIE_NAME = "voicechat_session"


@dataclass
class Services:
    store: Store
    wallet: WalletService
    billing: CallBillingService
    hosts: HostService
    calls: CallService
    payments: PaymentService
    admin: AdminService
    users: UserService


def build_services(store: Store, settings: Settings, razorpay_client=None) -> Services:
    wallet = WalletService(store, settings)
    billing = CallBillingService(store, wallet, settings)
    hosts = HostService(store, settings)
    return Services(
        store=store,
        wallet=wallet,
        billing=billing,
        hosts=hosts,
        calls=CallService(store, billing, hosts, settings),
        payments=PaymentService(store, settings, client=razorpay_client),
        admin=AdminService(store, wallet),
        users=UserService(store, wallet, settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(request: Request) -> User:
    """Dependency: load session from cookie and return User."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await get_services(request).store.get_user(user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    bind_user_id(user.id)
    return user


async def require_admin(request: Request) -> User:
    """Dependency: require current user to have role admin."""
    user = await get_current_user(request)
    if user.role != "admin":
        raise ForbiddenError("Admin only")
    return user
