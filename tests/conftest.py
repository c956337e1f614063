import pytest
from fastapi.testclient import TestClient

from relay.config import Settings
from relay.main import create_app
from stripe_helpers import DOWNSTREAM_KEY, DOWNSTREAM_URL, WEBHOOK_SECRET


@pytest.fixture
def settings(tmp_path):
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        downstream_url=DOWNSTREAM_URL,
        downstream_api_key=DOWNSTREAM_KEY,
        database_url=f"sqlite:///{tmp_path / 'relay_test.db'}",
        fallback_path=str(tmp_path / "pending_orders.json"),
    )


@pytest.fixture
def make_client():
    apps = []

    def _make(settings, **components):
        app = create_app(settings, **components)
        apps.append(app)
        return TestClient(app)

    yield _make

    for app in apps:
        app.state.engine.dispose()


@pytest.fixture
def client(settings, make_client):
    with make_client(settings) as c:
        yield c
