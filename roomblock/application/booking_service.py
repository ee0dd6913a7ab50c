import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from roomblock.application.activity import ActivitySink, LoggingActivitySink
from roomblock.application.discount_resolver import DiscountResolution, DiscountTierResolver
from roomblock.application.inventory_ledger import InventoryLedger, ReservationHandle
from roomblock.domain.exceptions import (
    BookingNotFoundError,
    DuplicateBookingError,
    PersistenceError,
    RoomBlockNotFoundError,
    ValidationError,
)
from roomblock.domain.pricing import booking_amount, count_nights
from roomblock.domain.state_machine import (
    BOOKABLE_EVENT_STATUSES,
    BookingStateMachine,
    BookingStatus,
    EventStatus,
)
from roomblock.domain.validation import GuestInfo, normalize_guest_info
from roomblock.infrastructure.db.models import Booking, Guest, WaitlistEntry
from roomblock.infrastructure.repositories.booking_repository import BookingRepository
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


logger = logging.getLogger(__name__)

_DUPLICATE_EMAIL = "A booking with this email already exists for this event."

BULK_CHECK_IN_LIMIT = 200

CHECK_IN_DONE = "checked_in"
CHECK_IN_ALREADY = "already_checked_in"
CHECK_IN_CANCELLED = "cancelled"
CHECK_IN_ERROR = "error"


@dataclass(frozen=True)
class _Quote:
    room_type: str
    room_rate: int
    nights: int
    add_on_prices: dict[str, int]


@dataclass(frozen=True)
class BookingResult:
    booking: Booking
    guest: Guest
    discount: DiscountResolution
    original_amount: int
    final_amount: int


@dataclass(frozen=True)
class CancellationResult:
    booking_id: str
    status: BookingStatus
    released: bool
    promoted_waitlist_id: Optional[str] = None


@dataclass(frozen=True)
class RoomChangeResult:
    booking: Booking
    from_room_type: str
    to_room_type: str
    change_type: str
    rate_difference: int
    old_amount: int
    new_amount: int


@dataclass(frozen=True)
class CheckInOutcome:
    booking_id: str
    outcome: str
    guest_name: Optional[str] = None


@dataclass(frozen=True)
class BulkCheckInResult:
    results: list[CheckInOutcome]

    def count(self, outcome: str) -> int:
        return sum(1 for item in self.results if item.outcome == outcome)


class BookingService:
    """Application service coordinating the booking workflow."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: InventoryLedger | None = None,
        discounts: DiscountTierResolver | None = None,
        activity_sink: ActivitySink | None = None,
    ):
        self._session_factory = session_factory
        self.ledger = ledger or InventoryLedger(session_factory)
        self.discounts = discounts or DiscountTierResolver(session_factory)
        self._activity = activity_sink or LoggingActivitySink()

    def create_booking(
        self,
        event_id: str,
        room_block_id: str,
        guest_info: GuestInfo,
        add_on_ids: Sequence[str] = (),
    ) -> BookingResult:
        """
        Validate, reserve one room, price it against the discount tier the
        reservation lands in, then store guest and booking.

        If storing fails the reservation is released before the error
        propagates.
        """
        info = normalize_guest_info(guest_info)
        quote = self._validate(event_id, room_block_id, info, add_on_ids)

        handle = self.ledger.try_reserve(room_block_id, 1)

        try:
            with self._session_factory.begin() as db:
                bookings = BookingRepository(db)
                # Checked again under the write lock; two requests with the
                # same email can both pass the early check.
                if info.email and bookings.email_has_active_booking(event_id, info.email):
                    raise DuplicateBookingError(_DUPLICATE_EMAIL)

                discount = self.discounts.resolve(event_id, db=db)
                original, final = booking_amount(
                    room_rate=quote.room_rate,
                    nights=quote.nights,
                    add_on_prices=list(quote.add_on_prices.values()),
                    discount_pct=discount.percent,
                )

                guest = Guest(
                    event_id=event_id,
                    name=info.name,
                    email=info.email,
                    phone=info.phone,
                    group=info.group,
                    proximity_request=info.proximity_request,
                    notes=info.special_requests,
                    status="confirmed",
                )
                db.add(guest)
                db.flush()

                booking = bookings.create_booking(
                    event_id=event_id,
                    room_block_id=room_block_id,
                    guest_id=guest.id,
                    guest_email=info.email,
                    reservation_id=handle.reservation_id,
                    original_amount=original,
                    discount_pct=discount.percent,
                    total_amount=final,
                    add_on_prices=quote.add_on_prices,
                )
                self.ledger.attach_booking(db, handle.reservation_id, booking.id)
        except IntegrityError as exc:
            self._compensate(handle)
            if info.email and self._email_taken(event_id, info.email):
                raise DuplicateBookingError(_DUPLICATE_EMAIL) from exc
            logger.exception(
                "Booking persistence failed. event_id=%s room_block_id=%s reservation_id=%s",
                event_id,
                room_block_id,
                handle.reservation_id,
            )
            raise PersistenceError("Booking could not be saved; the room was released") from exc
        except SQLAlchemyError as exc:
            logger.exception(
                "Booking persistence failed. event_id=%s room_block_id=%s reservation_id=%s",
                event_id,
                room_block_id,
                handle.reservation_id,
            )
            self._compensate(handle)
            raise PersistenceError("Booking could not be saved; the room was released") from exc
        except Exception:
            self._compensate(handle)
            raise

        discount_note = f" ({discount.percent:g}% discount applied)" if discount.percent else ""
        self._activity.record(
            event_id=event_id,
            action="booking_created",
            details=f"{info.name} booked {quote.room_type} for {final}{discount_note}",
            actor=info.name,
            aggregate_id=booking.id,
        )
        return BookingResult(
            booking=booking,
            guest=guest,
            discount=discount,
            original_amount=original,
            final_amount=final,
        )

    def cancel_booking(self, booking_id: str, today: date | None = None) -> CancellationResult:
        """
        Cancel a confirmed booking and hand its room back exactly once.
        Cancelling an already-cancelled booking returns ``released=False``.
        """
        today = today or datetime.now(timezone.utc).date()
        promoted: WaitlistEntry | None = None

        with self._session_factory.begin() as db:
            bookings = BookingRepository(db)
            booking = bookings.lock_by_id(booking_id)
            if not booking:
                raise BookingNotFoundError(f"Booking {booking_id} not found")

            if booking.status == BookingStatus.CANCELLED:
                return CancellationResult(
                    booking_id=booking.id,
                    status=booking.status,
                    released=False,
                )
            if booking.checked_in or booking.status == BookingStatus.CHECKED_IN:
                raise ValidationError("Cannot cancel a checked-in booking")

            event = EventRepository(db).require(booking.event_id)
            if event.check_out < today:
                raise ValidationError("Cannot cancel booking for a past event")

            BookingStateMachine.validate_transition(booking.status, BookingStatus.CANCELLED)
            if not bookings.mark_cancelled_if_confirmed(booking.id):
                db.refresh(booking)
                return CancellationResult(
                    booking_id=booking.id,
                    status=booking.status,
                    released=False,
                )

            released = self.ledger.release_reservation(booking.reservation_id, db=db)
            guest = db.get(Guest, booking.guest_id)
            if guest is not None:
                guest.status = "cancelled"

            promoted = bookings.next_waiting(booking.room_block_id)
            if promoted is not None:
                promoted.status = "NOTIFIED"

            db.refresh(booking)

        self._activity.record(
            event_id=booking.event_id,
            action="booking_cancelled",
            details=f"Booking {booking.id} cancelled",
            actor="Guest",
            aggregate_id=booking.id,
        )
        if promoted is not None:
            self._activity.record(
                event_id=booking.event_id,
                action="waitlist_promoted",
                details=f"{promoted.guest_name} promoted from waitlist after cancellation",
                actor="System",
                aggregate_id=promoted.id,
            )
        return CancellationResult(
            booking_id=booking.id,
            status=booking.status,
            released=released,
            promoted_waitlist_id=promoted.id if promoted else None,
        )

    def check_in(self, booking_id: str) -> Booking:
        with self._session_factory.begin() as db:
            bookings = BookingRepository(db)
            booking = bookings.lock_by_id(booking_id)
            if not booking:
                raise BookingNotFoundError(f"Booking {booking_id} not found")
            if booking.status == BookingStatus.CANCELLED:
                raise ValidationError("Cannot check in a cancelled booking")

            BookingStateMachine.validate_transition(booking.status, BookingStatus.CHECKED_IN)
            bookings.update_status(booking, BookingStatus.CHECKED_IN)
            booking.checked_in = True
            booking.checked_in_at = datetime.now(timezone.utc)

            guest = db.get(Guest, booking.guest_id)
            if guest is not None:
                guest.status = "checked-in"
            guest_name = guest.name if guest else booking.guest_id

        self._activity.record(
            event_id=booking.event_id,
            action="guest_checked_in",
            details=f"{guest_name} checked in",
            actor="Front Desk",
            aggregate_id=booking.id,
        )
        return booking

    def bulk_check_in(self, event_id: str, booking_ids: Sequence[str]) -> BulkCheckInResult:
        """
        Check in many bookings in one transaction. Bookings that are
        cancelled, already checked in, or not part of the event are
        reported per id instead of failing the batch.
        """
        if not booking_ids:
            raise ValidationError("booking_ids must not be empty")
        if len(booking_ids) > BULK_CHECK_IN_LIMIT:
            raise ValidationError(
                f"Maximum {BULK_CHECK_IN_LIMIT} bookings can be checked in at once"
            )

        checked_in_at = datetime.now(timezone.utc)
        results: list[CheckInOutcome] = []
        with self._session_factory.begin() as db:
            event = EventRepository(db).require(event_id)
            if event.status in (EventStatus.CANCELLED, EventStatus.DRAFT):
                raise ValidationError(
                    f"Cannot check in guests for an event with status: {event.status.value}"
                )

            bookings = BookingRepository(db)
            for booking_id in booking_ids:
                booking = bookings.lock_by_id(booking_id)
                if booking is None or booking.event_id != event_id:
                    results.append(CheckInOutcome(booking_id=booking_id, outcome=CHECK_IN_ERROR))
                    continue

                guest = db.get(Guest, booking.guest_id)
                guest_name = guest.name if guest else None
                if booking.status == BookingStatus.CANCELLED:
                    outcome = CHECK_IN_CANCELLED
                elif booking.checked_in or booking.status == BookingStatus.CHECKED_IN:
                    outcome = CHECK_IN_ALREADY
                else:
                    bookings.update_status(booking, BookingStatus.CHECKED_IN)
                    booking.checked_in = True
                    booking.checked_in_at = checked_in_at
                    if guest is not None:
                        guest.status = "checked-in"
                    outcome = CHECK_IN_DONE
                results.append(
                    CheckInOutcome(booking_id=booking_id, outcome=outcome, guest_name=guest_name)
                )

        result = BulkCheckInResult(results=results)
        checked_in = result.count(CHECK_IN_DONE)
        if checked_in:
            self._activity.record(
                event_id=event_id,
                action="bulk_checkin",
                details=f"Bulk check-in: {checked_in} guests checked in",
                actor="Agent",
            )
        return result

    def change_room(
        self,
        booking_id: str,
        new_room_block_id: str,
        reason: str | None = None,
    ) -> RoomChangeResult:
        """
        Move a booking to another room block of the same event and reprice
        it at the new rate, keeping its add-on lines and discount percent.

        The new room is reserved first. The old reservation is released in
        the transaction that repoints the booking, and the new reservation
        is given back if that transaction fails.
        """
        with self._session_factory.begin() as db:
            booking = db.get(Booking, booking_id)
            if not booking:
                raise BookingNotFoundError(f"Booking {booking_id} not found")
            if booking.status == BookingStatus.CANCELLED:
                raise ValidationError("Cannot change the room of a cancelled booking")
            if booking.room_block_id == new_room_block_id:
                raise ValidationError("Booking is already in this room block")

            blocks = RoomBlockRepository(db)
            new_block = blocks.get_by_id(new_room_block_id)
            if not new_block:
                raise RoomBlockNotFoundError(f"Room block {new_room_block_id} not found")
            if new_block.event_id != booking.event_id:
                raise ValidationError("Target room block does not belong to the same event")

            old_block = blocks.get_by_id(booking.room_block_id)
            event = EventRepository(db).require(booking.event_id)
            guest = db.get(Guest, booking.guest_id)

            event_id = booking.event_id
            old_room_block_id = booking.room_block_id
            old_amount = booking.total_amount
            nights = count_nights(event.check_in, event.check_out)
            guest_name = guest.name if guest else booking.guest_id
            from_room_type, from_rate = old_block.room_type, old_block.rate
            to_room_type, to_rate = new_block.room_type, new_block.rate

        handle = self.ledger.try_reserve(new_room_block_id, 1)

        try:
            with self._session_factory.begin() as db:
                bookings = BookingRepository(db)
                booking = bookings.lock_by_id(booking_id)
                if (
                    booking.status == BookingStatus.CANCELLED
                    or booking.room_block_id != old_room_block_id
                ):
                    raise ValidationError("Booking changed while the new room was being reserved")

                original, final = booking_amount(
                    room_rate=to_rate,
                    nights=nights,
                    add_on_prices=bookings.add_on_prices(booking.id),
                    discount_pct=booking.discount_pct,
                )
                self.ledger.release_reservation(booking.reservation_id, db=db)
                booking.room_block_id = new_room_block_id
                booking.reservation_id = handle.reservation_id
                booking.original_amount = original
                booking.total_amount = final
                self.ledger.attach_booking(db, handle.reservation_id, booking.id)
        except SQLAlchemyError as exc:
            logger.exception(
                "Room change failed. booking_id=%s room_block_id=%s reservation_id=%s",
                booking_id,
                new_room_block_id,
                handle.reservation_id,
            )
            self._compensate(handle)
            raise PersistenceError("Room change could not be saved; the new room was released") from exc
        except Exception:
            self._compensate(handle)
            raise

        change_type = "upgrade" if to_rate > from_rate else "downgrade"
        reason_note = f" ({reason})" if reason else ""
        self._activity.record(
            event_id=event_id,
            action=f"room_{change_type}d",
            details=f"{guest_name}: {from_room_type} -> {to_room_type}{reason_note}",
            actor="Agent",
            aggregate_id=booking.id,
        )
        return RoomChangeResult(
            booking=booking,
            from_room_type=from_room_type,
            to_room_type=to_room_type,
            change_type=change_type,
            rate_difference=to_rate - from_rate,
            old_amount=old_amount,
            new_amount=final,
        )

    def join_waitlist(
        self,
        event_id: str,
        room_block_id: str,
        guest_info: GuestInfo,
    ) -> WaitlistEntry:
        info = normalize_guest_info(guest_info)

        with self._session_factory.begin() as db:
            event = EventRepository(db).require(event_id)
            if event.status in (EventStatus.CANCELLED, EventStatus.COMPLETED):
                raise ValidationError("Event is no longer accepting waitlist entries")

            block = RoomBlockRepository(db).get_by_id(room_block_id)
            if not block:
                raise RoomBlockNotFoundError(f"Room block {room_block_id} not found")
            if block.event_id != event_id:
                raise ValidationError("Room block does not belong to this event")
            if block.booked_qty < block.total_qty:
                raise ValidationError("Rooms are available. Please book directly.")

            bookings = BookingRepository(db)
            if info.email and bookings.waiting_entry_for_email(room_block_id, info.email):
                raise DuplicateBookingError("Already on waitlist for this room type")

            entry = WaitlistEntry(
                event_id=event_id,
                room_block_id=room_block_id,
                guest_name=info.name,
                guest_email=info.email,
                guest_phone=info.phone,
                status="WAITING",
                position=bookings.next_waitlist_position(room_block_id),
            )
            db.add(entry)
            db.flush()
            room_type = block.room_type

        self._activity.record(
            event_id=event_id,
            action="waitlist_joined",
            details=f"{info.name} joined waitlist for {room_type}",
            actor=info.name,
            aggregate_id=entry.id,
        )
        return entry

    def _validate(
        self,
        event_id: str,
        room_block_id: str,
        info: GuestInfo,
        add_on_ids: Sequence[str],
    ) -> _Quote:
        with self._session_factory.begin() as db:
            events = EventRepository(db)
            event = events.require(event_id)
            if event.status not in BOOKABLE_EVENT_STATUSES:
                raise ValidationError("Event not available for booking")

            block = RoomBlockRepository(db).get_by_id(room_block_id)
            if not block:
                raise RoomBlockNotFoundError(f"Room block {room_block_id} not found")
            if block.event_id != event_id:
                raise ValidationError("Room block does not belong to this event")

            if info.email and BookingRepository(db).email_has_active_booking(event_id, info.email):
                raise DuplicateBookingError(_DUPLICATE_EMAIL)

            available = {add_on.id: add_on for add_on in events.add_ons(event_id)}
            unique_ids = list(dict.fromkeys(add_on_ids))
            unknown = [add_on_id for add_on_id in unique_ids if add_on_id not in available]
            if unknown:
                raise ValidationError("One or more selected add-ons do not belong to this event")

            return _Quote(
                room_type=block.room_type,
                room_rate=block.rate,
                nights=count_nights(event.check_in, event.check_out),
                add_on_prices={
                    add_on_id: 0 if available[add_on_id].is_included else available[add_on_id].price
                    for add_on_id in unique_ids
                },
            )

    def _email_taken(self, event_id: str, email: str) -> bool:
        with self._session_factory() as db:
            return BookingRepository(db).email_has_active_booking(event_id, email)

    def _compensate(self, handle: ReservationHandle) -> None:
        logger.warning(
            "Releasing reservation after failed booking. reservation_id=%s room_block_id=%s",
            handle.reservation_id,
            handle.room_block_id,
        )
        try:
            self.ledger.release(handle)
        except Exception:
            logger.exception(
                "Compensating release failed. reservation_id=%s room_block_id=%s",
                handle.reservation_id,
                handle.room_block_id,
            )
