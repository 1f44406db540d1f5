from datetime import datetime, timedelta, timezone

from badges.automation.engine import ReconciliationResult
from badges.models import (
    BadgeConfig,
    BadgeId,
    Condition,
    MemberId,
    Post,
    PostId,
    TenantId,
    condition_id_for,
)
from badges.sync import ASSIGN, REVOKE, SyncOperation

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TENANT = TenantId("net-1")


def make_post(post_id, member, days_ago, **kwargs) -> Post:
    return Post(
        id=PostId(post_id),
        published_at=NOW - timedelta(days=days_ago),
        created_by_id=MemberId(member) if member else None,
        title=kwargs.pop("title", f"post {post_id}"),
        **kwargs,
    )


def make_config(badge_id, threshold, days, active=True) -> BadgeConfig:
    return BadgeConfig(
        badge_id=BadgeId(badge_id),
        active=active,
        conditions={condition_id_for(badge_id): Condition(if_threshold=threshold, in_days=days)},
    )


class FakePlatformClient:
    def __init__(self):
        self.app_config = {}
        self.badges = []
        self.posts = []
        self.saved_configs = []
        self.calls = []
        self.fail_settings = False
        self.fail_update = False
        self.during_fetch = None

    def get_app_config(self):
        if self.fail_settings:
            raise RuntimeError("settings unavailable")
        return dict(self.app_config)

    def update_app_config(self, config):
        if self.fail_update:
            raise RuntimeError("update rejected")
        self.saved_configs.append(dict(config))

    def get_manual_badges(self):
        return [b for b in self.badges if b.is_manual]

    def get_posts_metadata(self, max_days=None):
        if self.during_fetch:
            self.during_fetch()
        return list(self.posts)

    def assign_badge(self, member_id, badge_id):
        self.calls.append((ASSIGN, badge_id, member_id))

    def revoke_badge(self, member_id, badge_id):
        self.calls.append((REVOKE, badge_id, member_id))


class RecordingSync:
    """Synchronous stand-in for BadgeSync that keeps every submitted operation."""

    def __init__(self):
        self.operations = []
        self.stopped = []

    def submit(self, tenant_id, op: SyncOperation) -> bool:
        self.operations.append((tenant_id, op))
        return True

    def submit_result(self, tenant_id, result: ReconciliationResult):
        for badge_id, members in result.revoke.items():
            for member_id in members:
                self.submit(tenant_id, SyncOperation(REVOKE, badge_id, member_id))
        for badge_id, members in result.assign.items():
            for member_id in members:
                self.submit(tenant_id, SyncOperation(ASSIGN, badge_id, member_id))
        return []

    def ops(self, tenant_id=TENANT):
        return [(op.action, op.badge_id, op.member_id) for t, op in self.operations if t == tenant_id]

    def clear(self):
        self.operations.clear()

    def stop(self, tenant_id, timeout=None):
        self.stopped.append(tenant_id)

    def shutdown(self):
        pass


class FakeScheduler:
    def __init__(self):
        self.jobs = {}

    def start(self, tenant_id, callback):
        self.jobs[tenant_id] = callback

    def stop(self, tenant_id):
        return self.jobs.pop(tenant_id, None) is not None

    def is_running(self, tenant_id):
        return tenant_id in self.jobs

    def shutdown(self):
        self.jobs.clear()


