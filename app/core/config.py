from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:8081"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Persistence: "mongo" (replica set, transactions) or "memory" (tests / local)
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")
    mongodb_uri: str = Field(default="mongodb://localhost:27017/?replicaSet=rs0", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="voicechat", alias="MONGODB_DB_NAME")

    # Razorpay
    razorpay_key_id: str = Field(default="", alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str = Field(default="", alias="RAZORPAY_KEY_SECRET")
    razorpay_webhook_secret: str = Field(default="", alias="RAZORPAY_WEBHOOK_SECRET")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:8081",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Call pricing (coins per started minute)
    audio_rate_per_minute: int = 10
    video_rate_per_minute: int = 60
    premium_discount: float = 0.5

    # Host revenue share (currency per coin, share of revenue)
    coin_to_currency_rate: float = 0.1  # 10 coins = ₹1
    audio_host_share: float = 0.15
    video_host_share: float = 0.30

    # Host bonuses (currency)
    high_rating_threshold: float = 4.5
    high_rating_bonus: float = 500
    high_rating_bonus_window_days: int = 30
    milestone_bonuses: dict[int, float] = Field(default_factory=lambda: {50: 1000, 100: 2500})

    # Withdrawals (currency)
    min_withdrawal_amount: float = 500

    # New accounts
    initial_user_coins: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings()
