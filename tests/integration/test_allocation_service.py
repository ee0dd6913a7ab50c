from concurrent.futures import ThreadPoolExecutor

import pytest

from roomblock.application.allocation_service import AllocationService
from roomblock.domain.allocation import UNRESOLVED_PROXIMITY
from roomblock.domain.exceptions import BucketFullError, ValidationError
from roomblock.infrastructure.db.models import Guest


def _add_guests(session_factory, event_id, rows):
    ids = []
    with session_factory.begin() as db:
        for name, group, proximity, status in rows:
            guest = Guest(
                event_id=event_id,
                name=name,
                group=group,
                proximity_request=proximity,
                status=status,
            )
            db.add(guest)
            db.flush()
            ids.append(guest.id)
    return ids


def _allocated(session_factory, guest_id):
    with session_factory() as db:
        guest = db.get(Guest, guest_id)
        return guest.allocated_floor, guest.allocated_wing


@pytest.fixture
def two_wing_event(make_event):
    return make_event(
        blocks=[
            {"room_type": "Deluxe", "rate": 9000, "total_qty": 2, "floor": "2", "wing": "East"},
            {"room_type": "Premier", "rate": 12000, "total_qty": 1, "floor": "3", "wing": "West"},
        ]
    )


def test_auto_allocation_persists_assignments(session_factory, two_wing_event):
    ids = _add_guests(
        session_factory,
        two_wing_event.id,
        [
            ("Anita", "VIP", None, "confirmed"),
            ("Rajesh", "VIP", "Anita", "confirmed"),
            ("Kavya", None, None, "invited"),
            ("Gone", None, None, "cancelled"),
        ],
    )

    plan = AllocationService(session_factory).plan(two_wing_event.id, mode="auto")

    assert [a.guest_id for a in plan.assignments] == ids[:3]
    assert _allocated(session_factory, ids[0]) == ("2", "East")
    assert _allocated(session_factory, ids[1]) == ("2", "East")
    assert _allocated(session_factory, ids[2]) == ("3", "West")
    assert _allocated(session_factory, ids[3]) == (None, None)


def test_preview_does_not_write(session_factory, two_wing_event):
    ids = _add_guests(session_factory, two_wing_event.id, [("Anita", None, None, "invited")])

    plan = AllocationService(session_factory).plan(two_wing_event.id, mode="auto", persist=False)

    assert len(plan.assignments) == 1
    assert _allocated(session_factory, ids[0]) == (None, None)


def test_repeat_auto_run_keeps_existing_allocations(session_factory, two_wing_event):
    first_ids = _add_guests(session_factory, two_wing_event.id, [("Anita", None, None, "invited")])
    service = AllocationService(session_factory)
    service.plan(two_wing_event.id, mode="auto")

    later_ids = _add_guests(
        session_factory,
        two_wing_event.id,
        [("B", None, None, "invited"), ("C", None, None, "invited"), ("D", None, "Anita", "invited")],
    )
    plan = service.plan(two_wing_event.id, mode="auto")

    assert [a.guest_id for a in plan.assignments] == later_ids[:2]
    assert plan.unplaced == [later_ids[2]]
    assert [w.code for w in plan.warnings] == [UNRESOLVED_PROXIMITY]
    assert _allocated(session_factory, first_ids[0]) == ("2", "East")


def test_manual_allocation_checks_capacity_at_commit(session_factory, two_wing_event):
    ids = _add_guests(
        session_factory,
        two_wing_event.id,
        [("A", None, None, "invited"), ("B", None, None, "invited")],
    )
    service = AllocationService(session_factory)
    service.plan(two_wing_event.id, mode="manual", overrides={ids[0]: ("3", "West")})

    with pytest.raises(BucketFullError):
        service.plan(two_wing_event.id, mode="manual", overrides={ids[1]: ("3", "West")})

    assert _allocated(session_factory, ids[0]) == ("3", "West")
    assert _allocated(session_factory, ids[1]) == (None, None)


def test_concurrent_manual_saves_cannot_overfill_bucket(session_factory, two_wing_event):
    ids = _add_guests(
        session_factory,
        two_wing_event.id,
        [("A", None, None, "invited"), ("B", None, None, "invited")],
    )
    service = AllocationService(session_factory)

    def _save(guest_id):
        try:
            service.plan(two_wing_event.id, mode="manual", overrides={guest_id: ("3", "West")})
            return "saved"
        except BucketFullError:
            return "full"

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(_save, ids))

    assert sorted(results) == ["full", "saved"]
    placed = [_allocated(session_factory, guest_id) for guest_id in ids]
    assert placed.count(("3", "West")) == 1
    assert placed.count((None, None)) == 1


def test_mode_validation(session_factory, two_wing_event):
    service = AllocationService(session_factory)

    with pytest.raises(ValidationError):
        service.plan(two_wing_event.id, mode="random")
    with pytest.raises(ValidationError):
        service.plan(two_wing_event.id, mode="manual")
