import pytest

from badges.models import AvailableBadge, BadgeId
from badges.service import BadgeOrchestrationService
from badges.state import TenantStateStore
from core.config import Settings, settings
from helpers import NOW, FakePlatformClient, FakeScheduler, RecordingSync


@pytest.fixture(autouse=True)
def unsigned_webhooks(monkeypatch):
    monkeypatch.setattr(settings, "signing_secret", "")
    monkeypatch.setattr(settings, "post_days_window_limit", 31)


@pytest.fixture
def platform_client():
    client = FakePlatformClient()
    client.badges = [
        AvailableBadge(id=BadgeId("b1"), name="Regular", active=True),
        AvailableBadge(id=BadgeId("b2"), name="Prolific", active=True),
        AvailableBadge(id=BadgeId("auto"), name="Founder", active=True, type="Automatic"),
    ]
    return client


@pytest.fixture
def store():
    return TenantStateStore()


@pytest.fixture
def sync():
    return RecordingSync()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def service(store, scheduler, sync, platform_client):
    config = Settings(post_days_window_limit=31, sync_delay_seconds=0)
    return BadgeOrchestrationService(
        store=store,
        scheduler=scheduler,
        sync=sync,
        client_factory=lambda tenant_id: platform_client,
        config=config,
        clock=lambda: NOW,
    )
