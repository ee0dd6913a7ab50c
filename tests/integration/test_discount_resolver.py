import pytest

from roomblock.application.discount_resolver import DiscountTierResolver
from roomblock.domain.exceptions import EventNotFoundError


def test_resolves_against_live_aggregate(session_factory, make_event):
    event = make_event(
        blocks=[
            {"room_type": "Deluxe", "rate": 9000, "total_qty": 10, "booked_qty": 4},
            {"room_type": "Suite", "rate": 20000, "total_qty": 5, "booked_qty": 3},
        ],
        discount_rules=[(5, 10), (10, 20)],
    )

    resolution = DiscountTierResolver(session_factory).resolve(event.id)

    assert resolution.aggregate_booked == 7
    assert resolution.percent == 10
    assert resolution.qualifying_tier.min_rooms == 5


def test_higher_tier_after_more_bookings(session_factory, make_event):
    event = make_event(
        blocks=[{"room_type": "Deluxe", "rate": 9000, "total_qty": 20, "booked_qty": 12}],
        discount_rules=[(5, 10), (10, 20)],
    )

    resolution = DiscountTierResolver(session_factory).resolve(event.id)

    assert resolution.percent == 20
    assert resolution.qualifying_tier.discount_pct == 20


def test_no_rule_qualifies(session_factory, make_event):
    event = make_event(discount_rules=[(5, 10)])

    resolution = DiscountTierResolver(session_factory).resolve(event.id)

    assert resolution.percent == 0
    assert resolution.qualifying_tier is None


def test_unknown_event(session_factory):
    with pytest.raises(EventNotFoundError):
        DiscountTierResolver(session_factory).resolve("missing-event")
