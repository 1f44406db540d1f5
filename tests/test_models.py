from datetime import datetime, timedelta, timezone

import pytest

from badges.models import (
    AvailableBadge,
    BadgeConfig,
    Post,
    PostId,
    PostLog,
    app_config_from_dict,
    app_config_to_dict,
    parse_datetime,
)
from helpers import NOW, make_config, make_post


def test_parse_datetime_handles_zulu_and_naive_values():
    assert parse_datetime("2026-10-18T12:00:00Z") == NOW
    assert parse_datetime("2026-10-18T14:00:00+02:00") == NOW
    assert parse_datetime(datetime(2026, 10, 18, 12)) == NOW
    assert parse_datetime(None) is None
    assert parse_datetime("") is None


def test_post_log_iterates_oldest_first():
    log = PostLog()
    log.upsert(make_post("new", "m1", 1))
    log.upsert(make_post("old", "m1", 10))
    log.upsert(make_post("mid", "m2", 5))

    assert [p.id for p in log] == ["old", "mid", "new"]
    assert log.oldest().id == "old"
    assert log.creators() == {"m1", "m2"}


def test_post_log_upsert_repositions_existing_post():
    log = PostLog()
    log.upsert(make_post("a", "m1", 3))
    log.upsert(make_post("b", "m1", 2))
    log.upsert(make_post("a", "m1", 1))

    assert len(log) == 2
    assert [p.id for p in log] == ["b", "a"]


def test_post_log_rejects_posts_without_publication_time():
    with pytest.raises(ValueError):
        PostLog().upsert(Post(id=PostId("p")))


def test_post_log_remove():
    log = PostLog()
    log.upsert(make_post("a", "m1", 3))
    assert log.remove(PostId("a")).id == "a"
    assert log.remove(PostId("a")) is None
    assert "a" not in log
    assert log.oldest() is None


def test_post_from_dict_reads_platform_fields():
    post = Post.from_dict(
        {
            "id": "p1",
            "publishedAt": "2026-10-17T12:00:00.000Z",
            "createdById": "m1",
            "isHidden": True,
            "status": "PUBLISHED",
        }
    )
    assert post.published_at == NOW - timedelta(days=1)
    assert post.created_by_id == "m1"
    assert not post.is_visible


def test_app_config_round_trips_platform_shape():
    raw = app_config_to_dict({"b1": make_config("b1", 3, 7, active=False)})
    assert raw["b1"]["badgeId"] == "b1"
    assert raw["b1"]["conditions"]["condition-b1"]["if"]["value"] == 3
    assert raw["b1"]["conditions"]["condition-b1"]["in"]["window"] == "LAST_N_DAYS"

    parsed = app_config_from_dict(raw)
    assert parsed == {"b1": make_config("b1", 3, 7, active=False)}


def test_app_config_defaults_badge_id_to_key():
    parsed = app_config_from_dict({"b9": {"conditions": {}}})
    assert parsed["b9"] == BadgeConfig(badge_id="b9")
    assert app_config_from_dict(None) == {}


def test_badge_type_check_is_case_insensitive():
    assert AvailableBadge.from_dict({"id": "b1", "type": "manual"}).is_manual
    assert AvailableBadge.from_dict({"id": "b1"}).is_manual
    assert not AvailableBadge.from_dict({"id": "b1", "type": "Automatic"}).is_manual


def test_naive_timestamps_are_treated_as_utc():
    assert parse_datetime("2026-10-18T12:00:00").tzinfo == timezone.utc
