import pytest
from fastapi.testclient import TestClient

from planner.api.deps import get_db
from planner.core.config import settings
from planner.main import app


@pytest.fixture
def client(session):
    def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_prefix():
    return settings.API_V1_STR
