import os
import tempfile
from dataclasses import dataclass, field
from datetime import date, timedelta

import pytest

# Point the module-level engine at SQLite before anything imports it.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'roomblock_import.db')}",
)

from fastapi.testclient import TestClient

from roomblock.api.routes.routes import get_session_factory
from roomblock.domain.state_machine import EventStatus
from roomblock.infrastructure.db.models import (
    AddOn,
    AttritionRule,
    DiscountRule,
    Event,
    RoomBlock,
)
from roomblock.infrastructure.db.session import Base, build_engine, build_session_factory
from roomblock.main import app


@dataclass
class SeededEvent:
    id: str
    block_ids: list[str] = field(default_factory=list)
    add_on_ids: list[str] = field(default_factory=list)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'roomblock.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_event(session_factory):
    """
    Insert an event with room blocks straight through the ORM.

    ``blocks`` is a list of dicts with room_type, rate, total_qty and
    optional booked_qty, floor and wing.
    """

    def _make(
        blocks=None,
        status=EventStatus.ACTIVE,
        check_in=None,
        nights=2,
        expected_pax=None,
        discount_rules=(),
        attrition_rules=(),
        add_ons=(),
    ) -> SeededEvent:
        check_in = check_in or date.today() + timedelta(days=30)
        blocks = blocks if blocks is not None else [{"room_type": "Deluxe", "rate": 10000, "total_qty": 5}]

        with session_factory.begin() as db:
            event = Event(
                name="Test Wedding",
                slug=f"test-wedding-{os.urandom(4).hex()}",
                check_in=check_in,
                check_out=check_in + timedelta(days=nights),
                expected_pax=expected_pax,
                status=status,
            )
            db.add(event)
            db.flush()
            seeded = SeededEvent(id=event.id)

            for item in blocks:
                block = RoomBlock(
                    event_id=event.id,
                    room_type=item["room_type"],
                    rate=item["rate"],
                    total_qty=item["total_qty"],
                    booked_qty=item.get("booked_qty", 0),
                    floor=item.get("floor"),
                    wing=item.get("wing"),
                )
                db.add(block)
                db.flush()
                seeded.block_ids.append(block.id)

            for min_rooms, pct in discount_rules:
                db.add(DiscountRule(event_id=event.id, min_rooms=min_rooms, discount_pct=pct))

            for release_date, pct in attrition_rules:
                db.add(
                    AttritionRule(
                        event_id=event.id,
                        release_date=release_date,
                        release_percent=pct,
                    )
                )

            for name, price, is_included in add_ons:
                add_on = AddOn(event_id=event.id, name=name, price=price, is_included=is_included)
                db.add(add_on)
                db.flush()
                seeded.add_on_ids.append(add_on.id)

        return seeded

    return _make
