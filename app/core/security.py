import uuid
from typing import Any

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from app.core.config import get_settings
from app.core.exceptions import BadRequestError, UnauthorizedError

BEARER_PREFIX = "Bearer "


def parse_bearer_token(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise UnauthorizedError("Not authenticated")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise UnauthorizedError("Not authenticated")
    return token


def verify_firebase_token(token: str) -> dict[str, Any]:
    """Verify a Firebase ID token; return decoded claims (user_id/sub, email, name, ...)."""
    settings = get_settings()
    try:
        claims = id_token.verify_firebase_token(
            token,
            google_requests.Request(),
            audience=settings.firebase_project_id or None,
        )
    except Exception as e:
        raise UnauthorizedError(f"Invalid ID token: {e}") from e
    if not claims:
        raise UnauthorizedError("Invalid ID token")
    return claims


def generate_idempotency_key() -> str:
    return str(uuid.uuid4())


def is_admin_email(email: str | None) -> bool:
    return bool(email) and email.lower() in get_settings().admin_emails


def require_idempotency_key(key: str | None) -> str:
    if not key or not key.strip():
        raise BadRequestError("Idempotency-Key header is required for this request")
    return key.strip()
