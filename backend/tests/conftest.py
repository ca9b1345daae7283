import pytest
from fastapi.testclient import TestClient

from finance_tracker.main import create_app
from finance_tracker.persistence import InMemoryPersistence


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def client(persistence: InMemoryPersistence) -> TestClient:
    app = create_app(persistence, auth_required=False, seed=False)
    return TestClient(app)
