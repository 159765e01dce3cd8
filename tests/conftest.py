import copy

import pytest
from fastapi.testclient import TestClient

from cookbook.app import create_app
from cookbook.config import Settings
from cookbook.db import init_db, make_engine, make_session_factory

ADMIN_TOKEN = "test-admin-token"

MANGO_DOCUMENT = {
    "recipes": [
        {
            "id": "r1",
            "title": "Mango Sticky Rice",
            "chef": {"name": "Nok"},
            "category": "desserts",
            "ingredients": [{"item": "rice", "amount": "1 cup"}],
            "instructions": ["Cook rice"],
            "tags": ["dessert", "thai"],
        }
    ],
    "categories": [
        {
            "id": "desserts",
            "name": "Desserts",
            "description": "Sweet",
            "emoji": "🍰",
            "count": 0,
        }
    ],
}


@pytest.fixture
def engine():
    # StaticPool keeps the in-memory database shared across sessions
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite:///:memory:", admin_token=ADMIN_TOKEN)


@pytest.fixture
def client(settings, engine):
    return TestClient(create_app(settings, engine))


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def mango_document():
    return copy.deepcopy(MANGO_DOCUMENT)
