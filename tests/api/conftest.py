"""API test fixtures: the real app over in-memory services, actor taken from headers."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from tests.fakes import header_actor


@pytest.fixture
def services(availability_service, reservation_service, offer_service):
    return {
        "availability": availability_service,
        "reservation": reservation_service,
        "offer": offer_service,
    }


@pytest.fixture
def app(services):
    return create_app(services, resolve_actor=header_actor)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)
