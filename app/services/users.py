from app.core.audit import log_event
from app.core.config import Settings
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.models.enums import TransactionKind
from app.models.user import User
from app.services.wallet import WalletService
from app.stores.base import Store

log = get_logger(__name__)


class UserService:
    def __init__(self, store: Store, wallet: WalletService, settings: Settings):
        self.store = store
        self.wallet = wallet
        self.settings = settings

    async def register(self, phone_number: str, display_name: str = "", role: str = "user") -> User:
        """Create an account; welcome coins go through the ledger like any other credit."""
        phone_number = (phone_number or "").strip()
        if not phone_number:
            raise BadRequestError("Phone number required")
        user = User(phone_number=phone_number, display_name=display_name.strip(), role=role)
        await self.store.insert_user(user)
        await log_event(self.store, user.id, "user_created", "user", user.id, {"phone_number": phone_number})
        log.info("user_created", user_id=user.id)
        if self.settings.initial_user_coins > 0:
            user.coins = await self.wallet.credit(
                user.id,
                self.settings.initial_user_coins,
                TransactionKind.BONUS,
                "Welcome bonus",
            )
        return user
