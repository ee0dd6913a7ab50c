import pytest

from roomblock.domain.allocation import (
    UNRESOLVED_PROXIMITY,
    BucketCapacity,
    GuestSnapshot,
    build_buckets,
    plan_auto,
    plan_manual,
)
from roomblock.domain.exceptions import BucketFullError, GuestNotFoundError, ValidationError


def _placement(plan):
    return {item.guest_id: (item.floor, item.wing) for item in plan.assignments}


# ---------------------
# BUCKETS
# ---------------------

def test_blocks_sharing_floor_and_wing_form_one_bucket():
    buckets = build_buckets([("2", "East", 4), ("2", "East", 3), (None, None, 2), ("1", "Main", 1)])

    assert [(b.floor, b.wing, b.capacity) for b in buckets] == [
        ("1", "Main", 3),
        ("2", "East", 7),
    ]


# ---------------------
# AUTOMATIC MODE
# ---------------------

def test_proximity_unresolved_when_buckets_hold_one_guest_each():
    guests = [
        GuestSnapshot(guest_id="a", name="A", group="X"),
        GuestSnapshot(guest_id="b", name="B", group="X", proximity_request="A"),
    ]
    buckets = [BucketCapacity("1", "East", 1), BucketCapacity("1", "West", 1)]

    plan = plan_auto(guests, buckets)

    placement = _placement(plan)
    assert set(placement) == {"a", "b"}
    assert placement["a"] != placement["b"]
    assert [(w.code, w.guest_id) for w in plan.warnings] == [(UNRESOLVED_PROXIMITY, "b")]
    assert plan.unplaced == []


def test_proximity_satisfied_when_a_bucket_fits_both():
    guests = [
        GuestSnapshot(guest_id="a", name="A", group="X"),
        GuestSnapshot(guest_id="b", name="B", group="X", proximity_request="A"),
    ]
    buckets = [BucketCapacity("1", "East", 1), BucketCapacity("2", "West", 2)]

    plan = plan_auto(guests, buckets)

    placement = _placement(plan)
    assert placement["a"] == placement["b"] == ("2", "West")
    assert plan.warnings == []


def test_proximity_moves_guest_next_to_named_guest():
    guests = [
        GuestSnapshot(guest_id="g1", name="Anita Sharma", group="VIP"),
        GuestSnapshot(guest_id="g2", name="Sunil", group="Friends", proximity_request="near anita sharma"),
    ]
    buckets = [BucketCapacity("1", "Main", 1), BucketCapacity("5", "Tower", 2)]

    plan = plan_auto(guests, buckets)

    placement = _placement(plan)
    assert placement["g1"] == ("5", "Tower")
    assert placement["g2"] == ("5", "Tower")
    assert plan.warnings == []


def test_chained_proximity_follows_target_that_moved_later():
    guests = [
        GuestSnapshot(guest_id="a", name="A", group="X"),
        GuestSnapshot(guest_id="b", name="B", group="Y", proximity_request="near C"),
        GuestSnapshot(guest_id="c", name="C", group="Z", proximity_request="near A"),
    ]
    buckets = [BucketCapacity("1", "E", 3), BucketCapacity("2", "W", 3), BucketCapacity("3", "N", 3)]

    plan = plan_auto(guests, buckets)

    assert _placement(plan) == {"a": ("1", "E"), "b": ("1", "E"), "c": ("1", "E")}
    assert plan.warnings == []


def test_chained_proximity_left_behind_is_reported():
    guests = [
        GuestSnapshot(guest_id="a", name="A", group="X"),
        GuestSnapshot(guest_id="b", name="B", group="Y", proximity_request="near C"),
        GuestSnapshot(guest_id="c", name="C", group="Z", proximity_request="near A"),
    ]
    buckets = [BucketCapacity("1", "E", 2), BucketCapacity("2", "W", 2), BucketCapacity("3", "N", 2)]

    plan = plan_auto(guests, buckets)

    placement = _placement(plan)
    assert placement["a"] == placement["c"] == ("1", "E")
    assert placement["b"] != placement["c"]
    assert [(w.code, w.guest_id) for w in plan.warnings] == [(UNRESOLVED_PROXIMITY, "b")]


def test_unknown_proximity_target_is_a_warning_not_an_error():
    guests = [GuestSnapshot(guest_id="g1", name="Kavya", proximity_request="next to Nobody")]
    plan = plan_auto(guests, [BucketCapacity("1", "Main", 3)])

    assert _placement(plan) == {"g1": ("1", "Main")}
    assert plan.warnings[0].code == UNRESOLVED_PROXIMITY


def test_large_group_is_split_across_buckets():
    guests = [GuestSnapshot(guest_id=f"g{i}", name=f"Guest {i}", group="Family") for i in range(5)]
    buckets = [BucketCapacity("1", "East", 3), BucketCapacity("2", "West", 2)]

    plan = plan_auto(guests, buckets)

    placement = _placement(plan)
    assert [placement[f"g{i}"] for i in range(5)] == [
        ("1", "East"),
        ("1", "East"),
        ("1", "East"),
        ("2", "West"),
        ("2", "West"),
    ]


def test_guests_beyond_capacity_are_returned_unplaced():
    guests = [GuestSnapshot(guest_id=f"g{i}", name=f"Guest {i}", group="Friends") for i in range(4)]

    plan = plan_auto(guests, [BucketCapacity("1", "Main", 3)])

    assert len(plan.assignments) == 3
    assert plan.unplaced == ["g3"]


def test_priority_groups_are_placed_first():
    guests = [
        GuestSnapshot(guest_id="f1", name="Friend", group="Friends"),
        GuestSnapshot(guest_id="v1", name="Vip", group="VIP"),
    ]

    plan = plan_auto(guests, [BucketCapacity("1", "Main", 1)])

    assert _placement(plan) == {"v1": ("1", "Main")}
    assert plan.unplaced == ["f1"]


def test_already_allocated_guests_use_up_capacity():
    guests = [
        GuestSnapshot(guest_id="old", name="Old", floor="1", wing="Main"),
        GuestSnapshot(guest_id="new", name="New"),
    ]

    plan = plan_auto(guests, [BucketCapacity("1", "Main", 1), BucketCapacity("2", "Main", 1)])

    assert _placement(plan) == {"new": ("2", "Main")}


def test_auto_plan_is_deterministic():
    guests = [
        GuestSnapshot(guest_id=f"g{i}", name=f"Guest {i}", group=["VIP", "Family", None, "Friends"][i % 4],
                      proximity_request="Guest 0" if i % 5 == 4 else None)
        for i in range(20)
    ]
    buckets = build_buckets([("1", "East", 6), ("2", "West", 6), ("3", "North", 5)])

    first = plan_auto(guests, buckets)
    second = plan_auto(list(guests), list(buckets))

    assert first == second


# ---------------------
# MANUAL MODE
# ---------------------

def test_manual_assignment_within_capacity():
    guests = [GuestSnapshot(guest_id="a", name="A"), GuestSnapshot(guest_id="b", name="B")]

    plan = plan_manual(guests, [BucketCapacity("1", "Main", 2)], {"a": ("1", "Main"), "b": ("1", "Main")})

    assert _placement(plan) == {"a": ("1", "Main"), "b": ("1", "Main")}


def test_manual_assignment_rejects_full_bucket():
    guests = [
        GuestSnapshot(guest_id="a", name="A", floor="1", wing="Main"),
        GuestSnapshot(guest_id="b", name="B"),
    ]

    with pytest.raises(BucketFullError) as excinfo:
        plan_manual(guests, [BucketCapacity("1", "Main", 1)], {"b": ("1", "Main")})

    assert excinfo.value.capacity == 1
    assert excinfo.value.requested == 2


def test_manual_move_frees_previous_seat():
    guests = [
        GuestSnapshot(guest_id="a", name="A", floor="1", wing="Main"),
        GuestSnapshot(guest_id="b", name="B", floor="2", wing="Main"),
    ]
    buckets = [BucketCapacity("1", "Main", 1), BucketCapacity("2", "Main", 1)]

    plan = plan_manual(guests, buckets, {"a": ("2", "Main"), "b": ("1", "Main")})

    assert _placement(plan) == {"a": ("2", "Main"), "b": ("1", "Main")}


def test_manual_assignment_unknown_guest_or_bucket():
    guests = [GuestSnapshot(guest_id="a", name="A")]
    buckets = [BucketCapacity("1", "Main", 1)]

    with pytest.raises(GuestNotFoundError):
        plan_manual(guests, buckets, {"zzz": ("1", "Main")})

    with pytest.raises(ValidationError):
        plan_manual(guests, buckets, {"a": ("9", "Roof")})
