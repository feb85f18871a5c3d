import logging

import pytest

from projecthub.core import CoreSettings
from projecthub.tracker import TrackerService, TrackerStores

TEST_SECRET = "projecthub-test-secret-0123456789abcdef"


def by_integration_marker(item):
    # Unit tests first, then integration tests
    return 1 if "integration" in str(item.fspath) else 0


def pytest_addoption(parser):
    parser.addoption("--integration-last", action="store_true", default=False)


def pytest_collection_modifyitems(items, config):
    if config.getoption("--integration-last"):
        items.sort(key=by_integration_marker)


@pytest.fixture(autouse=True)
def configure_logging_for_tests(caplog):
    """Make every projecthub logger propagate to the root logger so caplog captures it."""
    caplog.set_level(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)

    projecthub_logger = logging.getLogger("projecthub")
    original_propagate = projecthub_logger.propagate
    projecthub_logger.propagate = True

    yield

    root_logger.setLevel(original_level)
    projecthub_logger.propagate = original_propagate


@pytest.fixture
def settings():
    """Settings with an in-memory store and no back-off between retries."""
    return CoreSettings(
        PROJECTHUB_AUTH={"JWT_SECRET": TEST_SECRET, "JWT_ALGORITHM": "HS256", "TOKEN_EXPIRATION_HOURS": 2},
        PROJECTHUB_GRAPH={"WRITE_RETRIES": 3, "RETRY_DELAY": 0.0, "DELETE_POLICY": "none"},
        PROJECTHUB_API={"HOST": "127.0.0.1", "PORT": 4000, "STORE": "memory"},
    )


@pytest.fixture
def stores():
    return TrackerStores.in_memory()


@pytest.fixture
def service(stores, settings):
    return TrackerService(stores, settings=settings)


@pytest.fixture
def register(service):
    """Register a user through the service and return ``(auth_payload, caller)``."""

    async def _register(email="ada@example.com", first_name="Ada", last_name="Lovelace", password="secret1"):
        auth = await service.register_user(
            {"first_name": first_name, "last_name": last_name, "email": email, "password": password}
        )
        return auth, service.identity.caller_from_token(auth.token)

    return _register
