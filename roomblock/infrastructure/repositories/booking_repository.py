# roomblock/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from roomblock.infrastructure.db.models import (
    Booking,
    BookingAddOn,
    WaitlistEntry,
)
from roomblock.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def lock_by_id(self, booking_id: str) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def email_has_active_booking(self, event_id: str, email: str) -> bool:
        stmt = (
            select(func.count(Booking.id))
            .where(Booking.event_id == event_id)
            .where(Booking.status != BookingStatus.CANCELLED)
            .where(Booking.guest_email == email.lower())
        )
        return self.db.execute(stmt).scalar_one() > 0

    def create_booking(
        self,
        event_id: str,
        room_block_id: str,
        guest_id: str,
        guest_email: str | None,
        reservation_id: str,
        original_amount: int,
        discount_pct: float,
        total_amount: int,
        add_on_prices: dict[str, int],
    ) -> Booking:

        booking = Booking(
            event_id=event_id,
            room_block_id=room_block_id,
            guest_id=guest_id,
            guest_email=guest_email.lower() if guest_email else None,
            reservation_id=reservation_id,
            original_amount=original_amount,
            discount_pct=discount_pct,
            total_amount=total_amount,
            status=BookingStatus.CONFIRMED,
            checked_in=False,
        )
        self.db.add(booking)
        self.db.flush()

        for add_on_id, price in add_on_prices.items():
            self.db.add(
                BookingAddOn(
                    booking_id=booking.id,
                    add_on_id=add_on_id,
                    price=price,
                )
            )
        return booking

    def add_on_prices(self, booking_id: str) -> list[int]:
        stmt = select(BookingAddOn.price).where(BookingAddOn.booking_id == booking_id)
        return list(self.db.execute(stmt).scalars().all())

    def mark_cancelled_if_confirmed(self, booking_id: str) -> bool:
        """
        Conditional status flip. Exactly one of several concurrent
        cancellations sees rowcount 1.
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == BookingStatus.CONFIRMED)
            .values(status=BookingStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status

    def next_waiting(self, room_block_id: str) -> WaitlistEntry | None:
        stmt = (
            select(WaitlistEntry)
            .where(WaitlistEntry.room_block_id == room_block_id)
            .where(WaitlistEntry.status == "WAITING")
            .order_by(WaitlistEntry.position, WaitlistEntry.created_at)
            .limit(1)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def next_waitlist_position(self, room_block_id: str) -> int:
        stmt = select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(
            WaitlistEntry.room_block_id == room_block_id
        )
        return int(self.db.execute(stmt).scalar_one()) + 1

    def waiting_entry_for_email(self, room_block_id: str, email: str) -> WaitlistEntry | None:
        stmt = (
            select(WaitlistEntry)
            .where(WaitlistEntry.room_block_id == room_block_id)
            .where(WaitlistEntry.status == "WAITING")
            .where(func.lower(WaitlistEntry.guest_email) == email.lower())
        )
        return self.db.execute(stmt).scalars().first()
