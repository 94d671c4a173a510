from datetime import datetime

from pydantic import Field

from app.models.base import Record, utcnow
from app.models.enums import HostVerificationStatus


class User(Record):
    phone_number: str
    display_name: str = ""
    avatar_url: str | None = None
    role: str = "user"  # "user" | "admin"
    is_active: bool = True
    session_version: int = 0

    # Wallet (coins); only ledger operations change this
    coins: int = 0
    is_premium: bool = False
    premium_until: datetime | None = None

    # Host program
    is_host: bool = False
    host_verification_status: HostVerificationStatus = HostVerificationStatus.NONE
    host_documents: list[str] = Field(default_factory=list)
    host_applied_at: datetime | None = None
    host_verified_at: datetime | None = None
    host_rejected_at: datetime | None = None
    host_rejection_reason: str | None = None
    host_rating: float | None = None
    last_high_rating_bonus_at: datetime | None = None

    # Host balance (currency)
    total_earnings: float = 0
    available_balance: float = 0
    total_withdrawn: float = 0
    total_calls_as_host: int = 0
    total_minutes_as_host: int = 0

    # Call statistics
    total_calls_made: int = 0
    total_calls_received: int = 0
    total_call_minutes: int = 0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def has_premium(self, now: datetime | None = None) -> bool:
        """Premium only counts while the paid period is running."""
        if not self.is_premium or self.premium_until is None:
            return False
        return self.premium_until > (now or utcnow())
