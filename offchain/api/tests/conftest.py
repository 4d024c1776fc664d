import pytest
from fastapi.testclient import TestClient

from stela_api.config import Settings, get_settings
from stela_api.deps import get_rpc, get_store
from stela_api.main import app
from stela_core.db import StelaStore
from stela_core.rpc import MockStarknetRPC

WEBHOOK_SECRET = "test-webhook-secret"
STELA = "0x" + "0" * 62 + "5e"


@pytest.fixture
def store(tmp_path):
    db = StelaStore(f"sqlite:///{tmp_path / 'api.db'}")
    yield db
    db.close()


@pytest.fixture
def rpc():
    return MockStarknetRPC()


@pytest.fixture
def settings(tmp_path):
    """Settings with signature checks off; tests that need them flip the flag."""
    return Settings(
        webhook_secret=WEBHOOK_SECRET,
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        rpc_url="http://node.test",
        stela_address=STELA,
        verify_signatures=False,
    )


@pytest.fixture
def client(settings, store, rpc):
    """Test client wired to the per-test store, settings and mock node."""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_rpc] = lambda: rpc
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {WEBHOOK_SECRET}"}
