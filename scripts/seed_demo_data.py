from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select

from roomblock.domain.state_machine import EventStatus
from roomblock.infrastructure.db.models import (
    AddOn,
    AttritionRule,
    DiscountRule,
    Event,
    Guest,
    RoomBlock,
    ScheduleItem,
)
from roomblock.infrastructure.db.session import Base, SessionLocal, engine


DEMO_SLUG = "sharma-kapoor-wedding"


def _day(days_from_today: int) -> date:
    return date.today() + timedelta(days=days_from_today)


def _release(days_from_today: int) -> datetime:
    return datetime.combine(_day(days_from_today), time(hour=12), tzinfo=timezone.utc)


def seed_event(db) -> Event:
    event = db.execute(select(Event).where(Event.slug == DEMO_SLUG)).scalar_one_or_none()
    if event:
        event.check_in = _day(45)
        event.check_out = _day(48)
        return event

    event = Event(
        name="Sharma-Kapoor Wedding",
        slug=DEMO_SLUG,
        check_in=_day(45),
        check_out=_day(48),
        expected_pax=120,
        status=EventStatus.ACTIVE,
    )
    db.add(event)
    db.flush()
    return event


def seed_room_blocks(db, event: Event) -> None:
    blocks = [
        {"room_type": "Deluxe", "rate": 8500, "total_qty": 30, "floor": "2", "wing": "East"},
        {"room_type": "Premier", "rate": 12000, "total_qty": 20, "floor": "3", "wing": "East"},
        {"room_type": "Suite", "rate": 22000, "total_qty": 6, "floor": "5", "wing": "Tower"},
    ]

    for item in blocks:
        existing = db.execute(
            select(RoomBlock)
            .where(RoomBlock.event_id == event.id)
            .where(RoomBlock.room_type == item["room_type"])
        ).scalar_one_or_none()
        if existing:
            existing.rate = item["rate"]
            # Never shrink below rooms already sold.
            existing.total_qty = max(item["total_qty"], existing.booked_qty)
            existing.floor = item["floor"]
            existing.wing = item["wing"]
            continue

        db.add(RoomBlock(event_id=event.id, booked_qty=0, **item))


def seed_rules(db, event: Event) -> None:
    has_discounts = db.execute(
        select(DiscountRule.id).where(DiscountRule.event_id == event.id)
    ).first()
    if not has_discounts:
        db.add(DiscountRule(event_id=event.id, min_rooms=10, discount_pct=5, description="10+ rooms"))
        db.add(DiscountRule(event_id=event.id, min_rooms=25, discount_pct=10, description="25+ rooms"))
        db.add(DiscountRule(event_id=event.id, min_rooms=40, discount_pct=15, description="40+ rooms"))

    has_attrition = db.execute(
        select(AttritionRule.id).where(AttritionRule.event_id == event.id)
    ).first()
    if not has_attrition:
        db.add(
            AttritionRule(
                event_id=event.id,
                release_date=_release(15),
                release_percent=20,
                description="First release: 20% of unsold rooms",
            )
        )
        db.add(
            AttritionRule(
                event_id=event.id,
                release_date=_release(30),
                release_percent=50,
                description="Second release: half of unsold rooms",
            )
        )


def seed_extras(db, event: Event) -> None:
    has_add_ons = db.execute(select(AddOn.id).where(AddOn.event_id == event.id)).first()
    if not has_add_ons:
        db.add(AddOn(event_id=event.id, name="Airport Transfer", price=1500))
        db.add(AddOn(event_id=event.id, name="Welcome Kit", price=0, is_included=True))
        db.add(AddOn(event_id=event.id, name="Spa Session", price=3500))

    has_schedule = db.execute(
        select(ScheduleItem.id).where(ScheduleItem.event_id == event.id)
    ).first()
    if not has_schedule:
        db.add(ScheduleItem(event_id=event.id, title="Welcome Dinner", type="meal", cost=180000, pax_count=120))
        db.add(ScheduleItem(event_id=event.id, title="Haldi Brunch", type="meal", cost=90000, pax_count=120))
        db.add(ScheduleItem(event_id=event.id, title="Sangeet Night", type="ceremony", cost=250000))
        db.add(ScheduleItem(event_id=event.id, title="Tea Break", type="break", cost=24000, pax_count=120))


def seed_guests(db, event: Event) -> None:
    has_guests = db.execute(select(Guest.id).where(Guest.event_id == event.id)).first()
    if has_guests:
        return

    guests = [
        ("Anita Sharma", "VIP", None),
        ("Rajesh Sharma", "VIP", "near Anita Sharma"),
        ("Priya Kapoor", "Bride Side", None),
        ("Meera Kapoor", "Bride Side", "next to Priya Kapoor"),
        ("Vikram Malhotra", "Groom Side", None),
        ("Sunil Verma", "Friends", "near Vikram Malhotra"),
        ("Kavya Iyer", "Friends", None),
    ]
    for name, group, proximity in guests:
        db.add(
            Guest(
                event_id=event.id,
                name=name,
                group=group,
                proximity_request=proximity,
                status="invited",
            )
        )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        event = seed_event(db)
        seed_room_blocks(db, event)
        seed_rules(db, event)
        seed_extras(db, event)
        seed_guests(db, event)
        db.commit()
        print(f"Seed complete: demo wedding event {event.id} ({DEMO_SLUG}).")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
