from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from roomblock.domain.pricing import select_discount_tier
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


@dataclass(frozen=True)
class QualifyingTier:
    rule_id: str
    min_rooms: int
    discount_pct: float


@dataclass(frozen=True)
class DiscountResolution:
    percent: float
    qualifying_tier: Optional[QualifyingTier]
    aggregate_booked: int


class DiscountTierResolver:
    """
    Volume discount for an event, read against the live booked-room total.

    The aggregate is summed from the room blocks on every call, so the
    percentage floats with the bookings made so far.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def resolve(self, event_id: str, db: Session | None = None) -> DiscountResolution:
        if db is not None:
            return self._resolve(db, event_id)
        with self._session_factory.begin() as session:
            return self._resolve(session, event_id)

    def _resolve(self, db: Session, event_id: str) -> DiscountResolution:
        events = EventRepository(db)
        events.require(event_id)

        aggregate = RoomBlockRepository(db).aggregate_booked(event_id)
        rule = select_discount_tier(events.discount_rules(event_id), aggregate)
        if rule is None:
            return DiscountResolution(percent=0, qualifying_tier=None, aggregate_booked=aggregate)

        return DiscountResolution(
            percent=rule.discount_pct,
            qualifying_tier=QualifyingTier(
                rule_id=rule.id,
                min_rooms=rule.min_rooms,
                discount_pct=rule.discount_pct,
            ),
            aggregate_booked=aggregate,
        )
