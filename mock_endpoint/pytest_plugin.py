"""pytest fixtures for tests that talk to a mock endpoint.

Enable with ``pytest_plugins = ["mock_endpoint.pytest_plugin"]`` in a conftest.
"""

from typing import Iterator

import pytest

from mock_endpoint.endpoint.server import MockEndpoint


@pytest.fixture
def mock_endpoint() -> Iterator[MockEndpoint]:
    """A started endpoint on an ephemeral loopback port, stopped at teardown."""
    endpoint = MockEndpoint.start()
    try:
        yield endpoint
    finally:
        endpoint.stop()
