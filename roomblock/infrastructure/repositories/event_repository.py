# roomblock/infrastructure/repositories/event_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from roomblock.domain.exceptions import EventNotFoundError
from roomblock.infrastructure.db.models import (
    AddOn,
    AttritionRule,
    DiscountRule,
    Event,
    Guest,
    ScheduleItem,
)


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def require(self, event_id: str) -> Event:
        event = self.get_by_id(event_id)
        if not event:
            raise EventNotFoundError(f"Event {event_id} not found")
        return event

    def slug_exists(self, slug: str) -> bool:
        stmt = select(Event.id).where(Event.slug == slug)
        return self.db.execute(stmt).first() is not None

    def discount_rules(self, event_id: str) -> list[DiscountRule]:
        stmt = (
            select(DiscountRule)
            .where(DiscountRule.event_id == event_id)
            .order_by(DiscountRule.min_rooms, DiscountRule.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def attrition_rules(self, event_id: str) -> list[AttritionRule]:
        stmt = (
            select(AttritionRule)
            .where(AttritionRule.event_id == event_id)
            .order_by(AttritionRule.release_date, AttritionRule.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def add_ons(self, event_id: str) -> list[AddOn]:
        stmt = select(AddOn).where(AddOn.event_id == event_id).order_by(AddOn.name)
        return list(self.db.execute(stmt).scalars().all())

    def schedule_items(self, event_id: str) -> list[ScheduleItem]:
        stmt = select(ScheduleItem).where(ScheduleItem.event_id == event_id)
        return list(self.db.execute(stmt).scalars().all())

    def guests(self, event_id: str) -> list[Guest]:
        # Creation order is the planner's input order.
        stmt = (
            select(Guest)
            .where(Guest.event_id == event_id)
            .order_by(Guest.created_at, Guest.id)
        )
        return list(self.db.execute(stmt).scalars().all())
