from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from core import graphql
from core.config import Settings, settings as default_settings

from .automation import (
    ReconciliationResult,
    TimeWindowScheduler,
    compute_member_buckets,
    diff_badges,
    evict_expired_posts,
    run_job,
)
from .models import (
    AvailableBadge,
    BadgeConfig,
    BadgeId,
    MemberId,
    Post,
    TenantId,
    app_config_from_dict,
    app_config_to_dict,
)
from .repository import PlatformClient
from .state import TenantStateStore
from .sync import ASSIGN, BadgeSync, SyncOperation

log = logging.getLogger("uvicorn.error").getChild("badges.service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def lifecycle_handler(name: str):
    """Log and swallow any failure so the platform never retries the event forever."""

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, tenant_id, *args, **kwargs):
            try:
                return fn(self, tenant_id, *args, **kwargs)
            except Exception:
                log.exception("Failed to handle %s (network=%s)", name, tenant_id)
                return None

        return wrapper

    return decorator


class BadgeOrchestrationService:
    def __init__(
        self,
        store: TenantStateStore,
        scheduler: TimeWindowScheduler,
        sync: BadgeSync,
        client_factory: Callable[[TenantId], Any],
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.scheduler = scheduler
        self.sync = sync
        self.client_factory = client_factory
        self.settings = config or default_settings
        self.clock = clock

    # --- app lifecycle ---
    @lifecycle_handler("app install")
    def install(self, tenant_id: TenantId) -> bool:
        with self.store.lock(tenant_id):
            state = self.store.get(tenant_id)
            if state.installed:
                log.info("Network %s already installed; ignoring install", tenant_id)
                return False
            state.installed = True

        try:
            client = self.client_factory(tenant_id)
            app_config = client.get_app_config()
            badges = client.get_manual_badges()
        except Exception:
            # forget the half-built tenant so a later install starts over
            with self.store.lock(tenant_id):
                self.store.delete(tenant_id)
            raise

        try:
            posts = client.get_posts_metadata(self.settings.post_days_window_limit)
        except Exception:
            log.exception("Could not fetch posts for network %s; starting with an empty log", tenant_id)
            posts = []

        with self.store.lock(tenant_id):
            if not self.store.exists(tenant_id) or not self.store.get(tenant_id).installed:
                log.info("Network %s was uninstalled while installing; discarding fetched data", tenant_id)
                return False
            self.store.set_app_config(tenant_id, app_config)
            self.store.set_available_badges(tenant_id, badges)
            # posts delivered by webhooks during the fetch are newer than the fetched copy
            for post in posts:
                if post.published_at is not None and self.store.get_post(tenant_id, post.id) is None:
                    self.store.set_post(tenant_id, post)
            self.scheduler.start(tenant_id, lambda: self.run_nightly_sweep(tenant_id))
            self._reconcile_locked(tenant_id)
        log.info(
            "Successfully initialized the app for network %s (%d configs, %d badges, %d posts)",
            tenant_id,
            len(app_config),
            len(badges),
            len(posts),
        )
        return True

    @lifecycle_handler("app uninstall")
    def uninstall(self, tenant_id: TenantId) -> bool:
        with self.store.lock(tenant_id):
            existed = self.store.exists(tenant_id)
            self.store.delete(tenant_id)
            self.scheduler.stop(tenant_id)
        # outside the lock: the worker may be waiting on it to report a failure
        self.sync.stop(tenant_id)
        graphql.forget_network_token(tenant_id)
        log.info("Successfully cleaned up installation data for network %s", tenant_id)
        return existed

    # --- badges ---
    @lifecycle_handler("badge.created")
    def on_badge_created(self, tenant_id: TenantId, badge: AvailableBadge) -> None:
        if not badge.is_manual:
            log.debug("Ignoring non-manual badge %s (network=%s)", badge.id, tenant_id)
            return
        with self.store.lock(tenant_id):
            self.store.set_available_badge(tenant_id, badge)
        log.info("Added badge %s (%s) to network %s", badge.id, badge.name, tenant_id)

    @lifecycle_handler("badge.updated")
    def on_badge_updated(self, tenant_id: TenantId, badge: AvailableBadge) -> Optional[ReconciliationResult]:
        with self.store.lock(tenant_id):
            initial = self.store.get_available_badge(tenant_id, badge.id)
            active_changed = initial is None or initial.active != badge.active
            if badge.is_manual:
                self.store.set_available_badge(tenant_id, badge)
            else:
                self.store.delete_available_badge(tenant_id, badge.id)

            configured = False
            if active_changed:
                log.info(
                    "Badge %s active state changed %s -> %s (network=%s)",
                    badge.id,
                    initial.active if initial else None,
                    badge.active,
                    tenant_id,
                )
                configured = self.store.set_badge_config_active(tenant_id, badge.id, badge.active)

        if configured:
            return self.reconcile(tenant_id, badges=[badge.id])
        return None

    @lifecycle_handler("badge.deleted")
    def on_badge_deleted(self, tenant_id: TenantId, badge: AvailableBadge) -> None:
        with self.store.lock(tenant_id):
            self.store.delete_available_badge(tenant_id, badge.id)
            self.store.mark_badge_removed(tenant_id, badge.id)
            self.store.set_badge_config_active(tenant_id, badge.id, False)
            if self.store.get_selected_badge(tenant_id) == badge.id:
                self.store.set_selected_badge(tenant_id, None)
        log.info("Deleted badge %s from network %s", badge.id, tenant_id)

    # --- members ---
    @lifecycle_handler("member.suspended")
    def on_member_suspended(self, tenant_id: TenantId, member_id: MemberId) -> None:
        with self.store.lock(tenant_id):
            self.store.add_suspended_member(tenant_id, member_id)
        log.info("Member %s suspended (network=%s)", member_id, tenant_id)

    @lifecycle_handler("member.unsuspended")
    def on_member_unsuspended(self, tenant_id: TenantId, member_id: MemberId) -> int:
        with self.store.lock(tenant_id):
            self.store.remove_suspended_member(tenant_id, member_id)
            config = self.store.get_app_config(tenant_id)
            badges = [
                b for b in sorted(self.store.get_member_badges(tenant_id, member_id))
                if b in config and config[b].active
            ]
            dropped = []
            for badge_id in badges:
                op = SyncOperation(ASSIGN, badge_id, member_id)
                if not self.sync.submit(tenant_id, op):
                    dropped.append(op)
            self.mark_unapplied(tenant_id, dropped)
            submitted = len(badges) - len(dropped)
        log.info("Member %s unsuspended; re-applying %d badges (network=%s)", member_id, len(badges), tenant_id)
        return submitted

    # --- posts ---
    @lifecycle_handler("post change")
    def on_content_changed(
        self, tenant_id: TenantId, post: Post, deleted: bool = False
    ) -> Optional[ReconciliationResult]:
        member_id = post.created_by_id
        if not member_id or post.is_anonymous:
            log.info("Ignoring post %s without attributable author (network=%s)", post.id, tenant_id)
            return None

        with self.store.lock(tenant_id):
            if deleted or post.published_at is None:
                self.store.delete_post(tenant_id, post.id)
            else:
                self.store.set_post(tenant_id, post)
            return self._reconcile_locked(tenant_id, members=[member_id])

    # --- configuration ---
    @lifecycle_handler("badge config save")
    def on_config_saved(self, tenant_id: TenantId, config: BadgeConfig) -> Optional[ReconciliationResult]:
        removal = all(c.if_threshold == 0 for c in config.conditions.values())
        with self.store.lock(tenant_id):
            if removal:
                self.store.delete_badge_config(tenant_id, config.badge_id)
            else:
                self.store.set_badge_config(tenant_id, config)
            app_config = dict(self.store.get_app_config(tenant_id))
        log.info(
            "Badge config %s for %s (network=%s)",
            "removed" if removal else "saved",
            config.badge_id,
            tenant_id,
        )

        try:
            self.client_factory(tenant_id).update_app_config(app_config)
        except Exception:
            log.exception("Could not persist app config for network %s", tenant_id)

        return self.reconcile(tenant_id, badges=[config.badge_id])

    @lifecycle_handler("settings update")
    def on_settings_updated(self, tenant_id: TenantId, settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        app_config = app_config_from_dict((settings or {}).get("config"))
        with self.store.lock(tenant_id):
            self.store.set_app_config(tenant_id, app_config)
        self.reconcile(tenant_id)
        return self.get_settings(tenant_id)

    def get_settings(self, tenant_id: TenantId) -> Dict[str, Any]:
        with self.store.lock(tenant_id):
            return {"config": app_config_to_dict(self.store.get_app_config(tenant_id))}

    # --- nightly job ---
    def run_nightly_sweep(self, tenant_id: TenantId) -> Set[MemberId]:
        affected: Set[MemberId] = set()

        def worker():
            log.info("Starting nightly time window shifting for network %s", tenant_id)
            with self.store.lock(tenant_id):
                state = self.store.get(tenant_id)
                evicted_for = evict_expired_posts(state, self.settings.post_days_window_limit, self.clock())
                affected.update(evicted_for)
                if evicted_for:
                    self._reconcile_locked(tenant_id, members=evicted_for)
            log.info("Shifted time window for network %s (%d members affected)", tenant_id, len(affected))

        run_job(f"time-window-{tenant_id}", worker)
        return affected

    # --- reconciliation ---
    def mark_unapplied(self, tenant_id: TenantId, ops: List[SyncOperation]) -> None:
        """Undo the recorded effect of operations that never reached the platform.

        A dropped assign leaves the badge out of the member's current set and a
        dropped revoke puts it back, so the next cycle that covers the member
        derives the same operation again.
        """
        if not ops:
            return
        with self.store.lock(tenant_id):
            if not self.store.exists(tenant_id):
                return
            for op in ops:
                member = self.store.get_member(tenant_id, op.member_id)
                if member is None:
                    continue
                if op.action == ASSIGN:
                    member.badges.discard(op.badge_id)
                else:
                    member.badges.add(op.badge_id)
        log.warning("%d badge operations not applied for network %s; left for the next cycle", len(ops), tenant_id)

    def reconcile(
        self,
        tenant_id: TenantId,
        members: Optional[Iterable[MemberId]] = None,
        badges: Optional[Iterable[BadgeId]] = None,
    ) -> ReconciliationResult:
        with self.store.lock(tenant_id):
            return self._reconcile_locked(tenant_id, members, badges)

    def _reconcile_locked(
        self,
        tenant_id: TenantId,
        members: Optional[Iterable[MemberId]] = None,
        badges: Optional[Iterable[BadgeId]] = None,
    ) -> ReconciliationResult:
        # badge scope only narrows the log line; every badge is evaluated
        scope: Optional[List[MemberId]] = sorted(set(members)) if members is not None else None
        state = self.store.get(tenant_id)
        computed = compute_member_buckets(state, scope=scope, now=self.clock())
        self.store.set_members(tenant_id, computed)
        assign, revoke = diff_badges(state, computed)

        result = ReconciliationResult(assign=assign, revoke=revoke, members=sorted(computed))
        # queuing never waits, so it stays under the lock and keeps cycles in order
        self.mark_unapplied(tenant_id, self.sync.submit_result(tenant_id, result))
        log.info(
            "Reconciled network %s (members=%s, badges=%s): %d to assign, %d to revoke",
            tenant_id,
            "all" if scope is None else len(scope),
            "all" if badges is None else sorted(badges),
            sum(len(m) for m in assign.values()),
            sum(len(m) for m in revoke.values()),
        )
        return result


def create_orchestration_service(config: Optional[Settings] = None) -> BadgeOrchestrationService:
    config = config or default_settings

    def client_factory(tenant_id: TenantId) -> PlatformClient:
        return PlatformClient(tenant_id, config)

    sync = BadgeSync(
        client_factory,
        delay=config.sync_delay_seconds,
        queue_size=config.sync_queue_size,
    )
    service = BadgeOrchestrationService(
        store=TenantStateStore(),
        scheduler=TimeWindowScheduler(),
        sync=sync,
        client_factory=client_factory,
        config=config,
    )
    sync.on_failed = service.mark_unapplied
    return service
