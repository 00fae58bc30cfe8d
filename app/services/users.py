from datetime import datetime

from pymongo.errors import DuplicateKeyError

from app.core.audit import log_event
from app.core.exceptions import BadRequestError
from app.core.logging import get_logger
from app.core.security import is_admin_email
from app.models.user import User
from app.services import credits as credits_service

log = get_logger(__name__)


async def get_or_create_user(claims: dict) -> User:
    """Find or create the user for verified Firebase claims; keeps email/role in sync. New users get the signup bonus."""
    uid = claims.get("user_id") or claims.get("sub")
    if not uid:
        raise BadRequestError("Missing uid in token")
    email = claims.get("email") or ""
    name = claims.get("name") or ""
    role = "admin" if is_admin_email(email) else "user"

    user = await User.find_one(User.uid == uid)
    if user:
        if (user.email, user.role) != (email, role):
            user.email = email
            user.role = role
            user.updated_at = datetime.utcnow()
            await user.save()
        return user

    user = User(uid=uid, email=email, name=name, role=role, last_login_at=datetime.utcnow())
    try:
        await user.insert()
    except DuplicateKeyError:
        # concurrent first sign-in; the request that inserted owns the signup bonus
        log.info("user_create_raced", user_id=uid)
        existing = await User.find_one(User.uid == uid)
        if existing is None:
            raise
        return existing
    log.info("user_created", user_id=uid, email=email)
    await log_event(uid, "user_created", "user", uid, {"email": email})
    await credits_service.grant_signup_bonus(uid)
    return user
