from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from teamchat.auth import create_session_token
from teamchat.config import Settings
from teamchat.db import init_db, make_engine, make_session_factory
from teamchat.main import create_app

from .factories import seed_world


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        app_env="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'teamchat.db'}",
        session_secret_key="test-secret",
        log_level="DEBUG",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # entering the client runs the lifespan, which creates the tables
    with TestClient(app) as c:
        yield c


@pytest.fixture
def world(client, settings):
    engine = create_engine(settings.database_url.replace("+aiosqlite", ""))
    with Session(engine) as db:
        seeded = seed_world(db)
        db.commit()
    engine.dispose()
    return seeded


@pytest.fixture
def auth(settings):
    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_session_token(user_id, settings)}"}

    return _headers


@pytest.fixture
def session_cookie(settings):
    def _headers(user_id: str) -> dict[str, str]:
        token = create_session_token(user_id, settings)
        return {"cookie": f"{settings.session_cookie_name}={token}"}

    return _headers


@pytest.fixture
async def session_factory(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'unit.db'}")
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as db:
        ids = await db.run_sync(seed_world)
        await db.commit()
    return ids
