"""Shared FastAPI dependencies."""

from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import Depends, Header

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError
from app.core.logging import bind_actor
from app.core.security import parse_bearer_token, verify_firebase_token
from app.models.user import User
from app.services.generation import GenerationGateway
from app.services.users import get_or_create_user


async def get_current_user(authorization: str | None = Header(None)) -> User:
    """Dependency: verify the Firebase ID token from the Authorization header and return User."""
    token = parse_bearer_token(authorization)
    claims = verify_firebase_token(token)
    user = await get_or_create_user(claims)
    bind_actor(user.uid)
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require current user to have role admin."""
    if user.role != "admin":
        raise ForbiddenError("Admin only")
    return user


async def get_redis() -> AsyncIterator[aioredis.Redis]:
    redis = aioredis.from_url(get_settings().redis_url, decode_responses=True)
    try:
        yield redis
    finally:
        await redis.aclose()


def get_gateway() -> GenerationGateway:
    return GenerationGateway()


def get_enqueue():
    from app.worker.tasks import enqueue_generation_job
    return enqueue_generation_job
