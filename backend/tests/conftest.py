import pytest
from fastapi.testclient import TestClient

from main import create_app
from utilities import Settings


@pytest.fixture
def settings():
    """Settings with publish auth disabled."""
    return Settings(bearer="", debug=True)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """Test client with the lifespan running, so the broadcaster is up."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def secured_client():
    app = create_app(Settings(bearer="secret"))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def drain(client, app):
    """Block until every published webhook has been fanned out."""
    def _drain():
        client.portal.call(app.state.broadcaster.join)
    return _drain
