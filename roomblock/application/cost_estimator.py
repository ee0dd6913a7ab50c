from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from roomblock.domain.exceptions import ValidationError
from roomblock.domain.pricing import CostEstimate, ScheduleCost, count_nights, estimate_cost
from roomblock.infrastructure.db.models import Booking
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


DEFAULT_PAX = 50


class CostEstimator:
    """Rough budget for an event at a given headcount."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def estimate(self, event_id: str, pax_count: int | None = None) -> CostEstimate:
        with self._session_factory.begin() as db:
            events = EventRepository(db)
            event = events.require(event_id)

            if pax_count is None:
                pax_count = event.expected_pax or self._booking_count(db, event_id) or DEFAULT_PAX
            if pax_count < 1:
                raise ValidationError("Headcount must be at least 1")

            blocks = RoomBlockRepository(db).list_for_event(event_id)
            return estimate_cost(
                pax_count=pax_count,
                nights=count_nights(event.check_in, event.check_out),
                room_rates=[block.rate for block in blocks],
                schedule=[
                    ScheduleCost(type=item.type, cost=item.cost, pax_count=item.pax_count)
                    for item in events.schedule_items(event_id)
                ],
                add_ons=[(add_on.price, add_on.is_included) for add_on in events.add_ons(event_id)],
            )

    @staticmethod
    def _booking_count(db, event_id: str) -> int:
        stmt = select(func.count(Booking.id)).where(Booking.event_id == event_id)
        return int(db.execute(stmt).scalar_one())
