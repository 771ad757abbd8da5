from django.contrib.auth import get_user_model

import pytest
from rest_framework.test import APIClient


DEFAULT_TEST_USER_PASSWORD = "testpass123"  # noqa: S105


@pytest.fixture
def user_password():
    return DEFAULT_TEST_USER_PASSWORD


@pytest.fixture
def user(db, user_password):
    return get_user_model().objects.create_user(
        username="organizer", email="organizer@example.com", password=user_password
    )


@pytest.fixture
def auth_client(user, user_password):
    client = APIClient()
    client.login(username=user.username, password=user_password)
    return client


@pytest.fixture
def anonymous_client():
    client = APIClient()
    return client


@pytest.fixture
def di_container():
    """Fixture to create a DI container."""
    from di_core.containers import container

    return container
