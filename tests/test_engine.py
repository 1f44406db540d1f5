"""Bucket computation and badge diffing."""

from badges.automation.engine import compute_member_buckets, diff_badges
from badges.models import BadgeId, MemberId, MemberState, TenantState, condition_id_for
from helpers import NOW, make_config, make_post

B1 = BadgeId("b1")
B2 = BadgeId("b2")
M = MemberId("m1")
N = MemberId("m2")


def _state(*posts, configs=()):
    state = TenantState()
    for cfg in configs:
        state.config[cfg.badge_id] = cfg
    for post in posts:
        state.posts.upsert(post)
    return state


def _persist(state, members):
    state.members.update(members)


def test_three_recent_posts_earn_badge_and_are_assigned():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m1", 3),
        make_post("p3", "m1", 5),
        configs=[make_config("b1", 3, 7)],
    )

    members = compute_member_buckets(state, now=NOW)
    assert members[M].badges == {B1}
    assert members[M].buckets[B1].counters[condition_id_for("b1")] == 3

    assign, revoke = diff_badges(state, members)
    assert assign == {B1: [M]}
    assert revoke == {}


def test_posts_outside_window_do_not_count_and_revoke_held_badge():
    state = _state(
        make_post("p1", "m1", 8),
        make_post("p2", "m1", 9),
        make_post("p3", "m1", 10),
        configs=[make_config("b1", 3, 7)],
    )
    state.members[M] = MemberState(id=M, badges={B1})

    members = compute_member_buckets(state, now=NOW)
    assert B1 not in members[M].badges

    assign, revoke = diff_badges(state, members)
    assert assign == {}
    assert revoke == {B1: [M]}


def test_window_boundary_is_exclusive():
    state = _state(make_post("p1", "m1", 7), configs=[make_config("b1", 1, 7)])
    assert compute_member_buckets(state, now=NOW)[M].badges == set()


def test_deactivated_badge_is_neither_assigned_nor_revoked():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m1", 2),
        make_post("p3", "m1", 3),
        configs=[make_config("b1", 3, 7)],
    )
    _persist(state, compute_member_buckets(state, now=NOW))
    state.config[B1].active = False

    members = compute_member_buckets(state, now=NOW)
    assert members[M].badges == set()
    assert members[M].previous_badges == set()
    assert diff_badges(state, members) == ({}, {})


def test_hidden_unpublished_and_anonymous_posts_are_skipped():
    state = _state(
        make_post("p1", "m1", 1, is_hidden=True),
        make_post("p2", "m1", 1, status="DRAFT"),
        make_post("p3", "m1", 1, is_anonymous=True),
        make_post("p4", "m1", 1),
        configs=[make_config("b1", 2, 7)],
    )
    members = compute_member_buckets(state, now=NOW)
    assert members[M].badges == set()
    assert members[M].buckets[B1].counters[condition_id_for("b1")] == 1


def test_no_configs_or_no_posts_means_nothing_to_reconcile():
    assert compute_member_buckets(_state(make_post("p1", "m1", 1)), now=NOW) == {}
    assert compute_member_buckets(_state(configs=[make_config("b1", 1, 7)]), now=NOW) == {}


def test_scoped_recompute_carries_other_members_over():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m2", 1),
        configs=[make_config("b1", 1, 7)],
    )
    _persist(state, compute_member_buckets(state, now=NOW))
    state.posts.remove("p2")

    members = compute_member_buckets(state, scope=[M], now=NOW)
    # m2 lost its post but was out of scope, so it keeps its last result
    assert members[N].badges == {B1}
    assert diff_badges(state, members) == ({}, {})

    members = compute_member_buckets(state, scope=[N], now=NOW)
    assert members[N].badges == set()
    assert diff_badges(state, members) == ({}, {B1: [N]})


def test_met_condition_survives_scoped_recompute_while_posts_stay_tracked():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m1", 2),
        configs=[make_config("b1", 2, 7)],
    )
    cid = condition_id_for("b1")
    _persist(state, compute_member_buckets(state, scope=[M], now=NOW))
    assert cid in state.members[M].buckets[B1].met_conditions

    members = compute_member_buckets(state, scope=[M], now=NOW)
    assert cid in members[M].buckets[B1].met_conditions
    assert members[M].badges == {B1}


def test_met_condition_stops_counting():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m1", 2),
        make_post("p3", "m1", 3),
        configs=[make_config("b1", 2, 7)],
    )
    members = compute_member_buckets(state, now=NOW)
    assert members[M].buckets[B1].counters[condition_id_for("b1")] == 2


def test_suspended_member_loses_but_never_gains_badges():
    state = _state(
        make_post("p1", "m1", 1),
        configs=[make_config("b1", 1, 7), make_config("b2", 5, 7)],
    )
    state.members[M] = MemberState(id=M, badges={B2})
    state.suspended_members.add(M)

    members = compute_member_buckets(state, now=NOW)
    assert members[M].badges == {B1}
    assign, revoke = diff_badges(state, members)
    assert all(M not in ms for ms in assign.values())
    assert revoke == {B2: [M]}


def test_assign_and_revoke_never_overlap():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m2", 20),
        make_post("p3", "m2", 2),
        configs=[make_config("b1", 1, 7), make_config("b2", 2, 30)],
    )
    state.members[M] = MemberState(id=M, badges={B2})
    state.members[N] = MemberState(id=N, badges={B1})

    assign, revoke = diff_badges(state, compute_member_buckets(state, now=NOW))
    for badge_id in set(assign) | set(revoke):
        assert not set(assign.get(badge_id, [])) & set(revoke.get(badge_id, []))


def test_full_recompute_is_idempotent():
    state = _state(
        make_post("p1", "m1", 1),
        make_post("p2", "m2", 3),
        configs=[make_config("b1", 1, 7)],
    )
    first = compute_member_buckets(state, now=NOW)
    _persist(state, first)
    assert diff_badges(state, first)[0] == {B1: [M, N]}

    second = compute_member_buckets(state, now=NOW)
    assert diff_badges(state, second) == ({}, {})
