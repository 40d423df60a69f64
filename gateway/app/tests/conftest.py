"""
Shared fixtures for gateway tests.

The backend is replaced by an ``httpx.MockTransport`` wrapping a
``BackendDouble`` that records every outbound request, so tests can assert
on call counts and on exactly what the gateway sent.
"""

from typing import Callable, List

import httpx
import pytest
from fastapi.testclient import TestClient

from gateway.app.config import Settings
from gateway.app.main import create_app

PROXY_SECRET = "test-proxy-secret-1234567890"
INTERNAL_TOKEN = "test-internal-token-1234567890"
BACKEND_API_KEY = "service-role-api-key"
BACKEND_BEARER_TOKEN = "service-role-bearer-token"
BACKEND_URL = "https://backend.example.com"


class BackendDouble:
    """Records outbound requests and answers with a configurable responder"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json=[])
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def make_settings(**overrides) -> Settings:
    values = {
        "BACKEND_URL": BACKEND_URL,
        "BACKEND_API_KEY": BACKEND_API_KEY,
        "BACKEND_BEARER_TOKEN": BACKEND_BEARER_TOKEN,
        "PROXY_SECRET": PROXY_SECRET,
        "INTERNAL_TOKEN": INTERNAL_TOKEN,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    """Build Settings from the test defaults plus overrides"""
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def backend():
    return BackendDouble()


@pytest.fixture
def app(settings, backend):
    return create_app(settings, backend_transport=httpx.MockTransport(backend))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def secret_headers():
    return {"x-proxy-secret": PROXY_SECRET}
