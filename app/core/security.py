import hashlib
import hmac
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings

SESSION_MAX_AGE_SECONDS = 7 * 24 * 3600


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="voicechat-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    """Sign a session payload ({"user_id", "session_version"}) for the session cookie."""
    return get_session_serializer().dumps(payload)


def load_session_cookie(cookie_value: str) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=SESSION_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired):
        return None


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_razorpay_webhook(payload: bytes, signature: str, secret: str) -> bool:
    """Webhook signature: HMAC-SHA256 of the raw body with the webhook secret."""
    return hmac.compare_digest(_hmac_sha256(secret, payload), signature or "")


def verify_razorpay_payment(order_id: str, payment_id: str, signature: str, key_secret: str) -> bool:
    """Checkout signature: HMAC-SHA256 of "order_id|payment_id" with the key secret."""
    message = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.compare_digest(_hmac_sha256(key_secret, message), signature or "")
