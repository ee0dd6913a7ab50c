"""Room capacity counters.

The ledger is the only writer of ``RoomBlock.booked_qty``. Reserving is a
single conditional UPDATE, releasing is keyed by a reservation row so a
second release of the same reservation changes nothing.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from roomblock.domain.exceptions import (
    ConcurrencyConflictError,
    ExhaustedError,
    RoomBlockNotFoundError,
    ValidationError,
)
from roomblock.infrastructure.db.models import InventoryReservation
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


logger = logging.getLogger(__name__)

RESERVATION_MAX_ATTEMPTS = int(os.getenv("RESERVATION_MAX_ATTEMPTS", "3"))

HELD = "HELD"
RELEASED = "RELEASED"

T = TypeVar("T")


@dataclass(frozen=True)
class ReservationHandle:
    reservation_id: str
    room_block_id: str
    qty: int


class InventoryLedger:

    def __init__(
        self,
        session_factory: sessionmaker,
        max_attempts: int = RESERVATION_MAX_ATTEMPTS,
    ):
        self._session_factory = session_factory
        self._max_attempts = max(1, max_attempts)

    def try_reserve(self, room_block_id: str, qty: int = 1) -> ReservationHandle:
        """
        Take ``qty`` rooms from the block or fail without side effects.

        Raises RoomBlockNotFoundError, ExhaustedError, or
        ConcurrencyConflictError once every attempt hit a lock conflict.
        """
        if qty <= 0:
            raise ValidationError("Reservation quantity must be positive")

        def _reserve(db: Session) -> ReservationHandle:
            repo = RoomBlockRepository(db)
            if not repo.increment_booked_if_available(room_block_id, qty):
                if repo.get_by_id(room_block_id) is None:
                    raise RoomBlockNotFoundError(f"Room block {room_block_id} not found")
                raise ExhaustedError(room_block_id, qty)

            reservation = InventoryReservation(
                room_block_id=room_block_id,
                qty=qty,
                status=HELD,
            )
            db.add(reservation)
            db.flush()
            return ReservationHandle(
                reservation_id=reservation.id,
                room_block_id=room_block_id,
                qty=qty,
            )

        try:
            handle = self._with_retry("reserve", room_block_id, _reserve)
        except ExhaustedError:
            logger.info("Room block exhausted. room_block_id=%s qty=%s", room_block_id, qty)
            raise
        logger.debug(
            "Reserved. room_block_id=%s qty=%s reservation_id=%s",
            room_block_id,
            qty,
            handle.reservation_id,
        )
        return handle

    def release(self, handle: ReservationHandle, db: Session | None = None) -> bool:
        return self.release_reservation(handle.reservation_id, db=db)

    def release_reservation(self, reservation_id: str, db: Session | None = None) -> bool:
        """
        Give the reservation's rooms back, floored at zero.

        Returns False when the reservation was already released or does
        not exist. Pass ``db`` to take part in the caller's transaction.
        """
        if db is not None:
            return self._release(db, reservation_id)
        return self._with_retry(
            "release",
            reservation_id,
            lambda session: self._release(session, reservation_id),
        )

    def attach_booking(self, db: Session, reservation_id: str, booking_id: str) -> None:
        db.execute(
            update(InventoryReservation)
            .where(InventoryReservation.id == reservation_id)
            .values(booking_id=booking_id)
            .execution_options(synchronize_session=False)
        )

    def _release(self, db: Session, reservation_id: str) -> bool:
        flipped = db.execute(
            update(InventoryReservation)
            .where(InventoryReservation.id == reservation_id)
            .where(InventoryReservation.status == HELD)
            .values(status=RELEASED, released_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        ).rowcount == 1
        if not flipped:
            logger.info("Release skipped, reservation not held. reservation_id=%s", reservation_id)
            return False

        reservation = db.get(InventoryReservation, reservation_id)
        RoomBlockRepository(db).decrement_booked(reservation.room_block_id, reservation.qty)
        logger.debug(
            "Released. room_block_id=%s qty=%s reservation_id=%s",
            reservation.room_block_id,
            reservation.qty,
            reservation_id,
        )
        return True

    def _with_retry(self, operation: str, key: str, work: Callable[[Session], T]) -> T:
        # Lock contention clears within milliseconds; retry immediately.
        for attempt in range(1, self._max_attempts + 1):
            try:
                with self._session_factory.begin() as db:
                    return work(db)
            except OperationalError:
                logger.warning(
                    "Inventory %s conflict (attempt %s/%s). key=%s",
                    operation,
                    attempt,
                    self._max_attempts,
                    key,
                )
        raise ConcurrencyConflictError(
            f"Inventory {operation} for {key} kept conflicting after {self._max_attempts} attempts"
        )
