import os

# Must be set before main is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUTH_MODE"] = "header"
os.environ["ENV"] = "test"

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.memory_store import MemorySubmissionStore
from services.notifications import NotificationDispatcher
from utils.config import Settings

TEST_BASE_URL = "https://api.formdrop.test"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        store_backend="memory",
        public_base_url=TEST_BASE_URL,
        notification_mode="await",
        notification_timeout=2.0,
        rate_limit_enabled=False,
        auth_mode="header",
    )


@pytest.fixture
def memory_store() -> MemorySubmissionStore:
    return MemorySubmissionStore()


@pytest.fixture
def email_sender() -> Mock:
    return Mock(return_value=None)


@pytest.fixture
def dispatcher(email_sender, settings) -> NotificationDispatcher:
    return NotificationDispatcher(sender=email_sender, mode="await", timeout=settings.notification_timeout)


@pytest.fixture
def app(settings, memory_store, dispatcher):
    return create_app(settings=settings, store=memory_store, dispatcher=dispatcher)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-1"}
