from badges.models import BadgeId, MemberId, PostId, condition_id_for
from helpers import TENANT, make_config, make_post


def test_get_creates_empty_tenant_lazily(store):
    assert not store.exists(TENANT)
    state = store.get(TENANT)
    assert store.exists(TENANT)
    assert store.get(TENANT) is state
    assert store.tenants() == [TENANT]


def test_delete_removes_everything(store):
    store.set_badge_config(TENANT, make_config("b1", 1, 7))
    store.set_post(TENANT, make_post("p1", "m1", 1))
    store.delete(TENANT)
    assert not store.exists(TENANT)
    assert store.get_app_config(TENANT) == {}
    assert len(store.get_posts(TENANT)) == 0


def test_lock_is_reentrant_and_per_tenant(store):
    lock = store.lock(TENANT)
    assert store.lock(TENANT) is lock
    assert store.lock("other") is not lock
    with lock:
        with store.lock(TENANT):
            pass


def test_badge_config_activation(store):
    store.set_badge_config(TENANT, make_config("b1", 1, 7))
    assert store.set_badge_config_active(TENANT, BadgeId("b1"), False)
    assert not store.get_badge_config(TENANT, BadgeId("b1")).active
    assert not store.set_badge_config_active(TENANT, BadgeId("missing"), True)

    store.delete_badge_config(TENANT, BadgeId("b1"))
    assert store.get_badge_config(TENANT, BadgeId("b1")) is None


def test_set_posts_rebuilds_log(store):
    store.set_post(TENANT, make_post("stale", "m1", 2))
    store.set_posts(TENANT, [make_post("p2", "m1", 1), make_post("p1", "m2", 3)])
    assert [p.id for p in store.get_posts(TENANT)] == ["p1", "p2"]
    assert store.get_post(TENANT, PostId("stale")) is None
    assert store.delete_post(TENANT, PostId("p1")).id == "p1"


def test_bucket_values_and_member_badges(store):
    member = MemberId("m1")
    cid = condition_id_for("b1")
    assert store.get_bucket_value(TENANT, member, BadgeId("b1"), cid) is None

    store.set_bucket_value(TENANT, member, BadgeId("b1"), cid, 4)
    assert store.get_bucket_value(TENANT, member, BadgeId("b1"), cid) == 4

    store.add_member_badge(TENANT, member, BadgeId("b1"))
    assert store.get_member_badges(TENANT, member) == {"b1"}
    store.remove_member_badge(TENANT, member, BadgeId("b1"))
    assert store.get_member_badges(TENANT, member) == set()
    assert store.get_member_badges(TENANT, MemberId("nobody")) == set()


def test_suspension_and_selected_badge(store, platform_client):
    store.add_suspended_member(TENANT, MemberId("m1"))
    assert store.is_member_suspended(TENANT, MemberId("m1"))
    store.remove_suspended_member(TENANT, MemberId("m1"))
    assert not store.is_member_suspended(TENANT, MemberId("m1"))

    store.set_available_badges(TENANT, platform_client.badges)
    store.mark_badge_removed(TENANT, BadgeId("b1"))
    store.set_available_badge(TENANT, platform_client.badges[0])
    assert BadgeId("b1") not in store.get(TENANT).removed_badges

    store.set_selected_badge(TENANT, BadgeId("b2"))
    assert store.get_selected_badge(TENANT) == "b2"


def test_lock_outlives_tenant_deletion(store):
    lock = store.lock(TENANT)
    store.get(TENANT)
    store.delete(TENANT)
    assert store.lock(TENANT) is lock
