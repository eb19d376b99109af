from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from fintrack.config import Settings
from fintrack.database import build_engine, build_session_factory, create_all
from fintrack.dependencies import get_today
from fintrack.main import create_app


class FakeClock:
    def __init__(self, today: date):
        self.today = today


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(date(2024, 3, 15))


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        secret_key="test-secret",
        scheduler_enabled=False,
        storage_timeout_seconds=5.0,
    )


@pytest.fixture
async def app(settings, clock):
    # The lifespan is not run under ASGITransport, so wire state by hand.
    application = create_app(settings)
    engine = build_engine(settings.database_url)
    await create_all(engine)
    application.state.engine = engine
    application.state.session_factory = build_session_factory(engine)
    application.dependency_overrides[get_today] = lambda: clock.today
    yield application
    await engine.dispose()


@pytest.fixture
def session_factory(app):
    return app.state.session_factory


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register(client):
    async def _register(email: str = "alice@example.com", password: str = "correct-horse") -> dict:
        resp = await client.post(
            "/api/auth/register",
            json={"email": email, "password": password, "full_name": "Test User"},
        )
        assert resp.status_code == 201, resp.text
        resp = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}

    return _register


@pytest.fixture
async def auth_headers(register) -> dict:
    return await register()
