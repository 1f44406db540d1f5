import threading
from typing import Dict, Iterable, List, Optional, Set

from .models import (
    AppConfig,
    AvailableBadge,
    BadgeConfig,
    BadgeId,
    BucketState,
    ConditionId,
    MemberId,
    MemberState,
    Post,
    PostId,
    PostLog,
    TenantId,
    TenantState,
)


class TenantStateStore:
    """In-memory state for every installed tenant.

    Callers that read, compute and write back must hold ``lock(tenant_id)``
    for the whole cycle.
    """

    def __init__(self) -> None:
        self._states: Dict[TenantId, TenantState] = {}
        self._locks: Dict[TenantId, threading.RLock] = {}
        self._guard = threading.Lock()

    # --- tenants ---
    def get(self, tenant_id: TenantId) -> TenantState:
        with self._guard:
            state = self._states.get(tenant_id)
            if state is None:
                state = TenantState()
                self._states[tenant_id] = state
            return state

    def exists(self, tenant_id: TenantId) -> bool:
        return tenant_id in self._states

    def delete(self, tenant_id: TenantId) -> None:
        # the lock entry is kept: other threads may already be waiting on it
        with self._guard:
            self._states.pop(tenant_id, None)

    def tenants(self) -> List[TenantId]:
        return list(self._states)

    def lock(self, tenant_id: TenantId) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[tenant_id] = lock
            return lock

    # --- badge configs ---
    def get_app_config(self, tenant_id: TenantId) -> AppConfig:
        return self.get(tenant_id).config

    def set_app_config(self, tenant_id: TenantId, config: AppConfig) -> None:
        self.get(tenant_id).config = dict(config)

    def get_badge_config(self, tenant_id: TenantId, badge_id: BadgeId) -> Optional[BadgeConfig]:
        return self.get(tenant_id).config.get(badge_id)

    def set_badge_config(self, tenant_id: TenantId, config: BadgeConfig) -> None:
        self.get(tenant_id).config[config.badge_id] = config

    def set_badge_config_active(self, tenant_id: TenantId, badge_id: BadgeId, active: bool) -> bool:
        config = self.get_badge_config(tenant_id, badge_id)
        if config is None:
            return False
        config.active = active
        return True

    def delete_badge_config(self, tenant_id: TenantId, badge_id: BadgeId) -> None:
        self.get(tenant_id).config.pop(badge_id, None)

    # --- available badges ---
    def get_available_badges(self, tenant_id: TenantId) -> Dict[BadgeId, AvailableBadge]:
        return self.get(tenant_id).available_badges

    def set_available_badges(self, tenant_id: TenantId, badges: Iterable[AvailableBadge]) -> None:
        self.get(tenant_id).available_badges = {b.id: b for b in badges}

    def get_available_badge(self, tenant_id: TenantId, badge_id: BadgeId) -> Optional[AvailableBadge]:
        return self.get(tenant_id).available_badges.get(badge_id)

    def set_available_badge(self, tenant_id: TenantId, badge: AvailableBadge) -> None:
        state = self.get(tenant_id)
        state.available_badges[badge.id] = badge
        state.removed_badges.discard(badge.id)

    def delete_available_badge(self, tenant_id: TenantId, badge_id: BadgeId) -> None:
        self.get(tenant_id).available_badges.pop(badge_id, None)

    def mark_badge_removed(self, tenant_id: TenantId, badge_id: BadgeId) -> None:
        self.get(tenant_id).removed_badges.add(badge_id)

    # --- posts ---
    def get_posts(self, tenant_id: TenantId) -> PostLog:
        return self.get(tenant_id).posts

    def get_post(self, tenant_id: TenantId, post_id: PostId) -> Optional[Post]:
        return self.get(tenant_id).posts.get(post_id)

    def set_post(self, tenant_id: TenantId, post: Post) -> None:
        self.get(tenant_id).posts.upsert(post)

    def set_posts(self, tenant_id: TenantId, posts: Iterable[Post]) -> None:
        log = PostLog()
        for post in posts:
            log.upsert(post)
        self.get(tenant_id).posts = log

    def delete_post(self, tenant_id: TenantId, post_id: PostId) -> Optional[Post]:
        return self.get(tenant_id).posts.remove(post_id)

    # --- members ---
    def get_members(self, tenant_id: TenantId) -> Dict[MemberId, MemberState]:
        return self.get(tenant_id).members

    def get_member(self, tenant_id: TenantId, member_id: MemberId) -> Optional[MemberState]:
        return self.get(tenant_id).members.get(member_id)

    def upsert_member(self, tenant_id: TenantId, member_id: MemberId) -> MemberState:
        members = self.get(tenant_id).members
        member = members.get(member_id)
        if member is None:
            member = MemberState(id=member_id)
            members[member_id] = member
        return member

    def set_members(self, tenant_id: TenantId, members: Dict[MemberId, MemberState]) -> None:
        self.get(tenant_id).members.update(members)

    # --- buckets ---
    def get_bucket_value(
        self, tenant_id: TenantId, member_id: MemberId, badge_id: BadgeId, condition_id: ConditionId
    ) -> Optional[int]:
        member = self.get_member(tenant_id, member_id)
        if member is None or badge_id not in member.buckets:
            return None
        return member.buckets[badge_id].counters.get(condition_id)

    def set_bucket_value(
        self, tenant_id: TenantId, member_id: MemberId, badge_id: BadgeId, condition_id: ConditionId, value: int
    ) -> None:
        member = self.upsert_member(tenant_id, member_id)
        member.buckets.setdefault(badge_id, BucketState()).counters[condition_id] = value

    # --- member badges ---
    def get_member_badges(self, tenant_id: TenantId, member_id: MemberId) -> Set[BadgeId]:
        member = self.get_member(tenant_id, member_id)
        return set(member.badges) if member else set()

    def add_member_badge(self, tenant_id: TenantId, member_id: MemberId, badge_id: BadgeId) -> None:
        self.upsert_member(tenant_id, member_id).badges.add(badge_id)

    def remove_member_badge(self, tenant_id: TenantId, member_id: MemberId, badge_id: BadgeId) -> None:
        member = self.get_member(tenant_id, member_id)
        if member:
            member.badges.discard(badge_id)

    # --- suspension ---
    def is_member_suspended(self, tenant_id: TenantId, member_id: MemberId) -> bool:
        return member_id in self.get(tenant_id).suspended_members

    def add_suspended_member(self, tenant_id: TenantId, member_id: MemberId) -> None:
        self.get(tenant_id).suspended_members.add(member_id)

    def remove_suspended_member(self, tenant_id: TenantId, member_id: MemberId) -> None:
        self.get(tenant_id).suspended_members.discard(member_id)

    # --- configuration UI ---
    def get_selected_badge(self, tenant_id: TenantId) -> Optional[BadgeId]:
        return self.get(tenant_id).selected_badge

    def set_selected_badge(self, tenant_id: TenantId, badge_id: Optional[BadgeId]) -> None:
        self.get(tenant_id).selected_badge = badge_id
