"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


class CapturingMagicLinkSender:
    """Records (email, url) pairs instead of delivering them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send(self, email: str, url: str) -> None:
        self.sent.append((email, url))


@pytest.fixture
def api_client(engine, db_url):
    """FastAPI test client on the test database.

    Initializes the global database via init_db inside the TestClient's own
    event loop so route handlers can use get_session_factory(). The engine
    fixture ensures tables exist before this runs.
    """
    import app.db.base as db_mod
    from app.api.routes import api_router
    from app.core.config import get_settings
    from app.db import close_db, init_db
    from app.main import configure_app_state, install_exception_handlers
    from app.middleware.correlation import setup_correlation_middleware

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        # Reset global so init_db creates a fresh engine in THIS loop
        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(db_url)
        configure_app_state(app, get_settings())
        app.state.magic_link_sender = CapturingMagicLinkSender()
        yield
        await close_db()

    app = FastAPI(title="FormGate - Test Client", lifespan=test_lifespan)
    setup_correlation_middleware(app)
    install_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    with TestClient(app) as client:
        yield client


def _login(client: TestClient, email: str) -> None:
    """Run the magic-link flow; the session cookie stays in the client's jar."""
    response = client.post("/api/auth/login", json={"email": email})
    assert response.status_code == 200

    sender = client.app.state.magic_link_sender
    _, url = sender.sent[-1]
    token = url.split("token=", 1)[1]

    response = client.get("/api/auth/verify", params={"token": token}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"].endswith("/forms")


def _create_form(client: TestClient, name: str = "Contact", **extra) -> dict:
    response = client.post("/api/forms", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def login_as(api_client):
    """``login_as(email)`` signs the shared api_client in as ``email``."""
    return lambda email: _login(api_client, email)


@pytest.fixture
def make_form(api_client):
    """``make_form(name, **fields)`` creates a form as the signed-in user."""
    return lambda name="Contact", **extra: _create_form(api_client, name, **extra)
