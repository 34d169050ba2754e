import os
from typing import Any, AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient

# Must be in place before the app module reads its configuration
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("RATE_LIMIT_BURST", "10000")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "60000")
os.environ.setdefault("LOG_STRUCTURED", "false")
os.environ.setdefault("SUPPORTBOT_SYSTEM_API_KEY", "system-key")

from supportbot.config.app_config import AppConfig
from supportbot.db.session import Database, init_db
from supportbot.services import build_services
from supportbot.streaming.emitter import NO_PACING

from .fakes import FakeLLMController


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'supportbot-test.db'}")
    await init_db(db)
    try:
        yield db
    finally:
        await db.dispose()


@pytest.fixture
def fake_llm() -> FakeLLMController:
    return FakeLLMController()


@pytest.fixture
def services(database, fake_llm) -> Dict[str, Any]:
    return build_services(AppConfig(), database=database, llm_controller=fake_llm, pacing=NO_PACING)


@pytest.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    from supportbot.main import app

    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def user(services):
    return await services["user_repo"].create_user(email="jane@example.com", display_name="Jane")
