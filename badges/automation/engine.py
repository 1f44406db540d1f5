import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..models import BadgeId, BucketState, MemberId, MemberState, Post, TenantState

log = logging.getLogger(__name__)

DAY = timedelta(days=1)

BadgeMembers = Dict[BadgeId, List[MemberId]]


@dataclass
class ReconciliationResult:
  assign: BadgeMembers = field(default_factory=dict)
  revoke: BadgeMembers = field(default_factory=dict)
  members: List[MemberId] = field(default_factory=list)

  @property
  def is_empty(self) -> bool:
    return not self.assign and not self.revoke


def _counts_toward_badges(post: Post) -> bool:
  # anonymous posts are left out entirely, not just unattributed
  if post.is_anonymous or not post.created_by_id or post.published_at is None:
    return False
  return post.is_visible


def _carry_over(member: MemberState) -> MemberState:
  return MemberState(
    id=member.id,
    buckets=member.buckets,
    badges=set(member.badges),
    previous_badges=set(member.badges),
  )


def compute_member_buckets(
  state: TenantState,
  scope: Optional[Iterable[MemberId]] = None,
  now: Optional[datetime] = None,
) -> Dict[MemberId, MemberState]:
  """Recompute condition counters and earned badges for the members in scope.

  Members in ``scope`` start again from empty buckets and have every tracked
  post replayed; everybody else is returned as last computed. Without a scope,
  every member with a tracked post (and every member already known) is
  recomputed, and an empty map is returned when nothing is tracked.
  """
  if not state.config:
    return {}
  if scope is None:
    if not len(state.posts):
      return {}
    in_scope: Set[MemberId] = state.posts.creators() | set(state.members)
  else:
    in_scope = set(scope)

  now = now or datetime.now(timezone.utc)
  inactive = {badge_id for badge_id, cfg in state.config.items() if not cfg.active}

  result: Dict[MemberId, MemberState] = {}
  for member_id, member in state.members.items():
    if member_id not in in_scope:
      result[member_id] = _carry_over(member)

  for member_id in in_scope:
    previous = state.members.get(member_id)
    previous_badges = set(previous.badges) if previous else set()
    result[member_id] = MemberState(id=member_id, previous_badges=previous_badges - inactive)

  for post in state.posts:
    if not _counts_toward_badges(post) or post.created_by_id not in in_scope:
      continue
    member = result[post.created_by_id]
    age_days = (now - post.published_at) / DAY

    for badge_id, config in state.config.items():
      if not config.active:
        member.previous_badges.discard(badge_id)
        continue

      bucket = member.buckets.setdefault(badge_id, BucketState())
      if bucket.met_conditions.issuperset(config.conditions):
        continue

      for condition_id, condition in config.conditions.items():
        if condition_id in bucket.met_conditions:
          continue
        if age_days >= condition.in_days:
          continue
        count = bucket.counters.get(condition_id, 0) + 1
        bucket.counters[condition_id] = count
        if count >= condition.if_threshold:
          bucket.met_conditions.add(condition_id)
          member.badges.add(badge_id)

  log.debug(
    "Computed buckets for %d members (%d recomputed, %d posts tracked)",
    len(result),
    len(in_scope),
    len(state.posts),
  )
  return result


def diff_badges(
  state: TenantState,
  members: Dict[MemberId, MemberState],
) -> Tuple[BadgeMembers, BadgeMembers]:
  """Split the change between previous and current badges into assign/revoke lists.

  Suspended members still lose badges but are never granted new ones.
  """
  assign: BadgeMembers = {}
  revoke: BadgeMembers = {}
  for member_id in sorted(members):
    member = members[member_id]
    for badge_id in sorted(member.previous_badges - member.badges):
      revoke.setdefault(badge_id, []).append(member_id)
    if member_id in state.suspended_members:
      continue
    for badge_id in sorted(member.badges - member.previous_badges):
      assign.setdefault(badge_id, []).append(member_id)
  return assign, revoke
