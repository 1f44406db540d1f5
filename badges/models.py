from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, NewType, Optional, Set, Tuple

TenantId = NewType("TenantId", str)
BadgeId = NewType("BadgeId", str)
ConditionId = NewType("ConditionId", str)
MemberId = NewType("MemberId", str)
PostId = NewType("PostId", str)

PUBLISHED = "PUBLISHED"
MANUAL_BADGE_TYPE = "Manual"


class ConditionObject(str, Enum):
    NUMBER_OF_POSTS = "NUMBER_OF_POSTS"


class ConditionOperator(str, Enum):
    EQUALS = "EQUALS"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"


class ConditionTimeWindow(str, Enum):
    TODAY = "TODAY"
    THIS_WEEK = "THIS_WEEK"
    THIS_MONTH = "THIS_MONTH"
    LAST_N_DAYS = "LAST_N_DAYS"


def parse_datetime(raw: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        value = raw
    else:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def condition_id_for(badge_id: str) -> ConditionId:
    return ConditionId(f"condition-{badge_id}")


@dataclass
class Condition:
    if_threshold: int
    in_days: int
    if_object: ConditionObject = ConditionObject.NUMBER_OF_POSTS
    if_operator: ConditionOperator = ConditionOperator.GREATER_THAN_OR_EQUALS
    in_window: ConditionTimeWindow = ConditionTimeWindow.LAST_N_DAYS
    in_operator: ConditionOperator = ConditionOperator.EQUALS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "if": {"object": self.if_object.value, "operator": self.if_operator.value, "value": self.if_threshold},
            "in": {"window": self.in_window.value, "operator": self.in_operator.value, "value": self.in_days},
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Condition":
        if_part = raw.get("if") or {}
        in_part = raw.get("in") or {}
        return cls(
            if_threshold=int(if_part.get("value", 0)),
            in_days=int(in_part.get("value", 0)),
            if_object=ConditionObject(if_part.get("object", ConditionObject.NUMBER_OF_POSTS.value)),
            if_operator=ConditionOperator(if_part.get("operator", ConditionOperator.GREATER_THAN_OR_EQUALS.value)),
            in_window=ConditionTimeWindow(in_part.get("window", ConditionTimeWindow.LAST_N_DAYS.value)),
            in_operator=ConditionOperator(in_part.get("operator", ConditionOperator.EQUALS.value)),
        )


@dataclass
class BadgeConfig:
    badge_id: BadgeId
    active: bool = True
    conditions: Dict[ConditionId, Condition] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "badgeId": self.badge_id,
            "active": self.active,
            "conditions": {cid: c.to_dict() for cid, c in self.conditions.items()},
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BadgeConfig":
        return cls(
            badge_id=BadgeId(str(raw["badgeId"])),
            active=bool(raw.get("active", True)),
            conditions={
                ConditionId(cid): Condition.from_dict(c) for cid, c in (raw.get("conditions") or {}).items()
            },
        )


AppConfig = Dict[BadgeId, BadgeConfig]


def app_config_to_dict(config: AppConfig) -> Dict[str, Any]:
    return {badge_id: cfg.to_dict() for badge_id, cfg in config.items()}


def app_config_from_dict(raw: Optional[Dict[str, Any]]) -> AppConfig:
    config: AppConfig = {}
    for badge_id, cfg in (raw or {}).items():
        cfg = dict(cfg)
        cfg.setdefault("badgeId", badge_id)
        parsed = BadgeConfig.from_dict(cfg)
        config[parsed.badge_id] = parsed
    return config


@dataclass
class AvailableBadge:
    id: BadgeId
    name: str = ""
    active: bool = True
    type: str = MANUAL_BADGE_TYPE

    @property
    def is_manual(self) -> bool:
        return self.type.lower() == MANUAL_BADGE_TYPE.lower()

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AvailableBadge":
        return cls(
            id=BadgeId(str(raw["id"])),
            name=raw.get("name") or "",
            active=bool(raw.get("active", True)),
            type=raw.get("type") or MANUAL_BADGE_TYPE,
        )


@dataclass
class Post:
    id: PostId
    published_at: Optional[datetime] = None
    created_by_id: Optional[MemberId] = None
    title: str = ""
    is_hidden: bool = False
    is_anonymous: bool = False
    status: str = PUBLISHED

    @property
    def is_visible(self) -> bool:
        return not self.is_hidden and self.status == PUBLISHED

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Post":
        creator = raw.get("createdById")
        return cls(
            id=PostId(str(raw["id"])),
            published_at=parse_datetime(raw.get("publishedAt")),
            created_by_id=MemberId(str(creator)) if creator else None,
            title=raw.get("title") or "",
            is_hidden=bool(raw.get("isHidden")),
            is_anonymous=bool(raw.get("isAnonymous")),
            status=raw.get("status") or PUBLISHED,
        )


class PostLog:
    """Posts ordered by publication time, oldest first.

    Every insert keeps the order, so a walk from the front can stop at the
    first post that is still inside a window.
    """

    def __init__(self) -> None:
        self._keys: List[Tuple[datetime, str]] = []
        self._posts: Dict[PostId, Post] = {}

    def __len__(self) -> int:
        return len(self._posts)

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._posts

    def __iter__(self) -> Iterator[Post]:
        for _, post_id in list(self._keys):
            yield self._posts[PostId(post_id)]

    def get(self, post_id: PostId) -> Optional[Post]:
        return self._posts.get(post_id)

    def upsert(self, post: Post) -> None:
        if post.published_at is None:
            raise ValueError(f"post {post.id} has no publication time")
        self.remove(post.id)
        bisect.insort(self._keys, (post.published_at, post.id))
        self._posts[post.id] = post

    def remove(self, post_id: PostId) -> Optional[Post]:
        post = self._posts.pop(post_id, None)
        if post is None:
            return None
        key = (post.published_at, post.id)
        idx = bisect.bisect_left(self._keys, key)
        if idx < len(self._keys) and self._keys[idx] == key:
            del self._keys[idx]
        return post

    def oldest(self) -> Optional[Post]:
        if not self._keys:
            return None
        return self._posts[PostId(self._keys[0][1])]

    def creators(self) -> Set[MemberId]:
        return {p.created_by_id for p in self._posts.values() if p.created_by_id}


@dataclass
class BucketState:
    counters: Dict[ConditionId, int] = field(default_factory=dict)
    met_conditions: Set[ConditionId] = field(default_factory=set)


@dataclass
class MemberState:
    id: MemberId
    buckets: Dict[BadgeId, BucketState] = field(default_factory=dict)
    badges: Set[BadgeId] = field(default_factory=set)
    previous_badges: Set[BadgeId] = field(default_factory=set)


@dataclass
class TenantState:
    config: AppConfig = field(default_factory=dict)
    available_badges: Dict[BadgeId, AvailableBadge] = field(default_factory=dict)
    posts: PostLog = field(default_factory=PostLog)
    members: Dict[MemberId, MemberState] = field(default_factory=dict)
    suspended_members: Set[MemberId] = field(default_factory=set)
    removed_badges: Set[BadgeId] = field(default_factory=set)
    selected_badge: Optional[BadgeId] = None
    installed: bool = False
