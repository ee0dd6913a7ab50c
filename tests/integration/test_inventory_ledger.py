from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from roomblock.application.inventory_ledger import InventoryLedger
from roomblock.domain.exceptions import (
    ConcurrencyConflictError,
    ExhaustedError,
    RoomBlockNotFoundError,
    ValidationError,
)
from roomblock.infrastructure.db.models import InventoryReservation, RoomBlock


def _block(session_factory, block_id) -> RoomBlock:
    with session_factory() as db:
        return db.get(RoomBlock, block_id)


def _reserve_or_exhausted(ledger, block_id):
    try:
        return ledger.try_reserve(block_id)
    except ExhaustedError:
        return "exhausted"


def test_two_rooms_then_exhausted(session_factory, make_event):
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 2}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: ledger.try_reserve(block_id), range(2)))

    assert len({handle.reservation_id for handle in results}) == 2
    assert _block(session_factory, block_id).booked_qty == 2

    with pytest.raises(ExhaustedError):
        ledger.try_reserve(block_id)
    assert _block(session_factory, block_id).booked_qty == 2


def test_concurrent_reservations_never_oversell(session_factory, make_event):
    capacity, attempts = 5, 20
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": capacity}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: _reserve_or_exhausted(ledger, block_id), range(attempts)))

    successes = [r for r in results if r != "exhausted"]
    assert len(successes) == capacity
    assert results.count("exhausted") == attempts - capacity

    block = _block(session_factory, block_id)
    assert block.booked_qty == block.total_qty == capacity


def test_release_is_idempotent_per_handle(session_factory, make_event):
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 3}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory)

    first = ledger.try_reserve(block_id)
    ledger.try_reserve(block_id)
    assert _block(session_factory, block_id).booked_qty == 2

    assert ledger.release(first) is True
    assert ledger.release(first) is False
    assert _block(session_factory, block_id).booked_qty == 1

    with session_factory() as db:
        reservation = db.get(InventoryReservation, first.reservation_id)
        assert reservation.status == "RELEASED"
        assert reservation.released_at is not None


def test_release_floors_at_zero(session_factory, make_event):
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 3}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory)
    handle = ledger.try_reserve(block_id, qty=2)

    # Simulate a counter that drifted below the reservation size.
    with session_factory.begin() as db:
        db.get(RoomBlock, block_id).booked_qty = 1

    assert ledger.release(handle) is True
    assert _block(session_factory, block_id).booked_qty == 0


def test_unknown_block_and_bad_quantity(session_factory):
    ledger = InventoryLedger(session_factory)

    with pytest.raises(RoomBlockNotFoundError):
        ledger.try_reserve("missing-block")

    with pytest.raises(ValidationError):
        ledger.try_reserve("missing-block", qty=0)

    assert ledger.release_reservation("missing-reservation") is False


def test_lock_conflicts_retry_then_surface(session_factory, make_event, monkeypatch):
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 3}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory, max_attempts=3)
    calls = []

    def _locked(self, room_block_id, qty):
        calls.append(room_block_id)
        raise OperationalError("UPDATE room_blocks", {}, Exception("database is locked"))

    monkeypatch.setattr(
        "roomblock.infrastructure.repositories.room_block_repository."
        "RoomBlockRepository.increment_booked_if_available",
        _locked,
    )

    with pytest.raises(ConcurrencyConflictError):
        ledger.try_reserve(block_id)

    assert len(calls) == 3
    assert _block(session_factory, block_id).booked_qty == 0
    with session_factory() as db:
        assert db.execute(select(InventoryReservation)).first() is None


def test_counter_invariant_holds_under_mixed_traffic(session_factory, make_event):
    event = make_event(blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 4}])
    block_id = event.block_ids[0]
    ledger = InventoryLedger(session_factory)
    held = [ledger.try_reserve(block_id) for _ in range(4)]

    def _churn(index):
        if index % 2 == 0:
            return ledger.release(held[index // 2 % len(held)])
        return _reserve_or_exhausted(ledger, block_id)

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(_churn, range(12)))

    block = _block(session_factory, block_id)
    assert 0 <= block.booked_qty <= block.total_qty

    with session_factory() as db:
        held_qty = sum(
            r.qty
            for r in db.execute(
                select(InventoryReservation).where(InventoryReservation.status == "HELD")
            ).scalars()
        )
    assert block.booked_qty == held_qty
