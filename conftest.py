import pytest
from rest_framework.test import APIClient

from pulsecheck_app.core.connectivity import ConnectivityMonitor
from pulsecheck_app.core.settings_store import SettingsStore
from pulsecheck_app.core.store import DocumentStore

TEST_PASSWORD = "correct-horse-battery-staple"


@pytest.fixture
def store(db):
    return DocumentStore()


@pytest.fixture
def connectivity():
    """A monitor with no probe URL: online until told otherwise."""
    return ConnectivityMonitor()


@pytest.fixture
def settings_store(store, connectivity):
    return SettingsStore(store, connectivity)


@pytest.fixture(autouse=True)
def no_retry_delay(settings):
    settings.PULSECHECK_RETRY_BASE_DELAY = 0


@pytest.fixture
def admin_user(django_user_model):
    user = django_user_model.objects.create_user(
        username="admin",
        email="admin@example.com",
        password=TEST_PASSWORD,
        is_staff=True,
    )
    user.profile.mark_verified()
    return user


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(admin_user)
    return client


@pytest.fixture
def api_client():
    return APIClient()
