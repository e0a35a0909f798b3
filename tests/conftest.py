"""
Shared fixtures for restpress tests.
"""

import pytest

from restpress.container import Container
from restpress.host import HostRequest
from restpress.models import Request
from restpress.router import Router
from restpress.testing import FakeHost


@pytest.fixture
def container():
    return Container()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def router(container, host):
    """A router bound to the fake host environment, namespace ``api/v1``."""
    return Router(container, environment=host)


@pytest.fixture
def make_request(host):
    """Build a ``Request`` from keyword parameter sources."""

    def build(method="GET", route="/", environment=None, **sources):
        host_request = HostRequest(method=method, route=route, **sources)
        return Request(host_request, environment if environment is not None else host)

    return build
