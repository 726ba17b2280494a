import pytest
from unittest.mock import MagicMock
import os

# Ensure secrets are set before any backend module is imported
os.environ["ACCESS_TOKEN_SECRET"] = "test_secret"
os.environ["STORE_ID"] = "teststore"
os.environ["STORE_PASS"] = "teststore@ssl"

from backend.gateway.server import create_app

ROUTE_MODULES = [
    "backend.auth_service.routes",
    "backend.events_service.routes",
    "backend.messages_service.routes",
    "backend.favorites_service.routes",
    "backend.payments_service.routes",
    "backend.feedback_service.routes",
]


@pytest.fixture
def app():
    app = create_app(init_indexes=False)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the database handle returned by get_db().

    db["name"] returns the same MagicMock collection for the same name, so
    tests can configure e.g. mock_db["events"].find_one.return_value.
    """
    collections = {}

    def get_collection(name):
        if name not in collections:
            collections[name] = MagicMock(name=name)
        return collections[name]

    db = MagicMock()
    db.__getitem__.side_effect = get_collection

    for module in ROUTE_MODULES:
        mocker.patch(f"{module}.get_db", return_value=db)

    return db


@pytest.fixture
def auth_headers(mocker):
    """
    Build an Authorization header for a user whose stored role is `role`.
    The role lookup is patched, so no users collection is needed.
    """
    from backend.auth_service.utils import create_token

    def make(role=None, email="user@example.com"):
        mocker.patch("backend.auth_service.utils.lookup_role", return_value=role)
        return {"Authorization": f"Bearer {create_token(email)}"}

    return make
