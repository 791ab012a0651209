"""
Shared test fixtures.

- clock: a controllable time source, starting at the real current time so
  that JWT expiry (checked by PyJWT against the wall clock) behaves normally
- store / code_issuer / token_issuer: fresh credential components per test
- config: a Config built from a monkeypatched environment
- dqos_backend / dqos_client: an in-memory DQoS API behind httpx.MockTransport
- client: a FastAPI TestClient running the full application
"""

import time

import httpx
import pytest
from fastapi.testclient import TestClient

from auth import AccessTokenIssuer, AuthorizationCodeIssuer
from config import Config
from dqos_client import DQoSClient
from main import create_app
from token_store import TokenStore

TEST_SECRET = "test-signing-secret-0123456789abcdef"
CLIENT_ID = "dqos-mcp-client"
CLIENT_SECRET = "test-client-secret"
REDIRECT_URI = "https://claude.ai/api/mcp/auth_callback"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now=None):
        self.now = time.time() if now is None else now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeDQoSBackend:
    """Records requests and serves canned JSON per path"""

    def __init__(self):
        self.requests = []
        self.responses = {}
        self.error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        path = request.url.path.rsplit("/", 1)[-1]
        status, payload = self.responses.get(path, (200, {"path": path}))
        return httpx.Response(status, json=payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return TokenStore()


@pytest.fixture
def code_issuer(store, clock):
    return AuthorizationCodeIssuer(store, clock=clock)


@pytest.fixture
def token_issuer(store, clock):
    return AccessTokenIssuer(store, TEST_SECRET, clock=clock)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", TEST_SECRET)
    monkeypatch.setenv("OAUTH_CLIENT_ID", CLIENT_ID)
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", CLIENT_SECRET)
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("SERVER_URL", "http://testserver")
    monkeypatch.setenv("DQOS_API_URL", "http://dqos.test/api/mcp")
    for name in ("OAUTH_CODE_EXPIRY", "OAUTH_TOKEN_EXPIRY", "CLEANUP_INTERVAL", "JWT_ALGORITHM",
                 "DQOS_TIMEOUT", "ALLOWED_ORIGINS", "PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config(env):
    return Config()


@pytest.fixture
def dqos_backend():
    return FakeDQoSBackend()


@pytest.fixture
def dqos_client(config, dqos_backend):
    return DQoSClient(config, transport=httpx.MockTransport(dqos_backend))


@pytest.fixture
def client(config, store, dqos_client):
    app = create_app(config, store=store, dqos_client=dqos_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def access_token(client):
    """Run the full consent + exchange flow and return a live access token"""
    response = client.post(
        "/authorize",
        data={"client_id": CLIENT_ID, "redirect_uri": REDIRECT_URI, "state": "xyz", "action": "allow"},
        follow_redirects=False,
    )
    code = httpx.URL(response.headers["location"]).params["code"]
    response = client.post(
        "/token",
        data={"grant_type": "authorization_code", "code": code,
              "client_id": CLIENT_ID, "client_secret": CLIENT_SECRET},
    )
    return response.json()["access_token"]
