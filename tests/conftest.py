import pytest
import httpx
from typing import AsyncGenerator, Iterator

from fastapi import FastAPI

from mock_endpoint.config import settings
from mock_endpoint.endpoint.app import create_app
from mock_endpoint.endpoint.metrics import EndpointMetrics
from mock_endpoint.endpoint.state import EndpointState

pytest_plugins = ["mock_endpoint.pytest_plugin"]


@pytest.fixture
def state() -> EndpointState:
    return EndpointState()


@pytest.fixture
def metrics() -> EndpointMetrics:
    return EndpointMetrics()


@pytest.fixture
def app(state: EndpointState, metrics: EndpointMetrics) -> FastAPI:
    return create_app(state, metrics)


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    # In-process client: exercises the ASGI app without a socket.
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://mock") as client:
        yield client


@pytest.fixture
def http_client() -> Iterator[httpx.Client]:
    # trust_env=False keeps CI proxy variables away from loopback traffic
    with httpx.Client(trust_env=False, timeout=5.0) as client:
        yield client


@pytest.fixture
def fast_retry(monkeypatch: pytest.MonkeyPatch) -> float:
    delay = 0.2
    monkeypatch.setattr(settings, "bind_retry_delay", delay)
    return delay
