import os
import uuid
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from fastapi import Header
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

# Settings are cached on first use; set env before anything imports app.core.config
os.environ.setdefault("MONGODB_DB_NAME", "benchcoach_test")
os.environ.setdefault("CREDIT_EXEMPT_USER_IDS", "exempt-user")
os.environ.setdefault("ADMIN_EMAILS", "ops@benchcoach.test")
os.environ.setdefault("AI_GATEWAY_URL", "http://gateway.test/v1/generate")
os.environ.setdefault("SIGNUP_BONUS_CREDITS", "50")


class FakeRedis:
    """incr/expire over a dict; enough for the fixed-window limiter."""

    def __init__(self):
        self.counts: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True


class BrokenRedis:
    async def incr(self, key: str) -> int:
        raise ConnectionError("redis down")

    async def expire(self, key: str, seconds: int) -> bool:
        raise ConnectionError("redis down")


class GatewayStub:
    """Queue of canned handlers for the generation service; records every request body."""

    def __init__(self):
        self.calls: list[dict] = []
        self.responses: list = []

    def respond(self, handler) -> None:
        self.responses.append(handler)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        import json
        self.calls.append(json.loads(request.content))
        if not self.responses:
            return httpx.Response(200, json={"artifact": {"ok": True}})
        handler = self.responses.pop(0)
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(request)
        return httpx.Response(200, json=handler)

    def gateway(self):
        from app.services.generation import GenerationGateway
        return GenerationGateway(transport=httpx.MockTransport(self), timeout=1.0)


@pytest_asyncio.fixture
async def db():
    from app.db.init import init_db
    client = AsyncMongoMockClient()
    database = client[f"benchcoach_test_{uuid.uuid4().hex[:8]}"]
    await init_db(database)
    yield database


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def broken_redis() -> BrokenRedis:
    return BrokenRedis()


@pytest.fixture
def enqueued() -> list[str]:
    return []


@pytest_asyncio.fixture
async def client(db, gateway_stub, fake_redis, enqueued) -> AsyncGenerator[AsyncClient, None]:
    """API client; the caller is chosen per request with the X-Test-User header (default "coach")."""
    from app.deps import get_current_user, get_enqueue, get_gateway, get_redis
    from app.main import app
    from app.services.users import get_or_create_user

    async def _current_user(x_test_user: str = Header("coach")):
        return await get_or_create_user({"user_id": x_test_user, "email": f"{x_test_user}@benchcoach.test"})

    async def _redis():
        yield fake_redis

    async def _enqueue(job_id: str) -> None:
        enqueued.append(job_id)

    app.dependency_overrides[get_current_user] = _current_user
    app.dependency_overrides[get_redis] = _redis
    app.dependency_overrides[get_gateway] = gateway_stub.gateway
    app.dependency_overrides[get_enqueue] = lambda: _enqueue
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()