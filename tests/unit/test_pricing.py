from dataclasses import dataclass
from datetime import date

import pytest

from roomblock.domain.pricing import (
    ScheduleCost,
    apply_discount,
    booking_amount,
    count_nights,
    estimate_cost,
    representative_rate,
    rooms_at_risk,
    round_half_up,
    select_discount_tier,
    urgency_for,
)


@dataclass
class Rule:
    min_rooms: int
    discount_pct: float
    is_active: bool = True


TIERS = [Rule(min_rooms=5, discount_pct=10), Rule(min_rooms=10, discount_pct=20)]


@pytest.mark.parametrize(
    "aggregate, expected",
    [(0, None), (4, None), (5, 10), (7, 10), (10, 20), (12, 20)],
)
def test_tier_selection_uses_largest_threshold_reached(aggregate, expected):
    rule = select_discount_tier(TIERS, aggregate)

    assert (rule.discount_pct if rule else None) == expected


def test_equal_thresholds_prefer_higher_percentage():
    rules = [Rule(min_rooms=5, discount_pct=8), Rule(min_rooms=5, discount_pct=12)]

    assert select_discount_tier(rules, 6).discount_pct == 12


def test_inactive_rules_are_ignored():
    rules = [Rule(min_rooms=5, discount_pct=10), Rule(min_rooms=8, discount_pct=30, is_active=False)]

    assert select_discount_tier(rules, 9).discount_pct == 10


def test_discount_never_decreases_as_bookings_grow():
    rules = [
        Rule(min_rooms=3, discount_pct=5),
        Rule(min_rooms=8, discount_pct=12),
        Rule(min_rooms=8, discount_pct=7),
        Rule(min_rooms=15, discount_pct=18),
    ]
    previous = 0
    for aggregate in range(0, 30):
        rule = select_discount_tier(rules, aggregate)
        pct = rule.discount_pct if rule else 0
        assert pct >= previous
        previous = pct


def test_round_half_up_rounds_halves_away_from_zero():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_apply_discount_rounds_half_up():
    # 1005 * 0.9 = 904.5
    assert apply_discount(1005, 10) == 905
    assert apply_discount(20000, 0) == 20000


def test_booking_amount_combines_nights_and_add_ons():
    original, final = booking_amount(room_rate=8000, nights=3, add_on_prices=[1500, 0], discount_pct=10)

    assert original == 25500
    assert final == 22950


def test_count_nights_never_negative():
    assert count_nights(date(2026, 12, 10), date(2026, 12, 13)) == 3
    assert count_nights(date(2026, 12, 13), date(2026, 12, 10)) == 0


def test_rooms_at_risk_rounds_up():
    assert rooms_at_risk(8, 25) == 2
    assert rooms_at_risk(8, 30) == 3
    assert rooms_at_risk(0, 50) == 0
    assert rooms_at_risk(-3, 50) == 0


def test_representative_rate_weights_by_capacity():
    assert representative_rate([(10000, 3), (20000, 1)]) == 12500
    assert representative_rate([]) == 0


@pytest.mark.parametrize(
    "days_left, label",
    [(-1, "OVERDUE"), (0, "OVERDUE"), (2, "CRITICAL"), (7, "URGENT"), (14, "WARNING"), (15, "ON_TRACK")],
)
def test_urgency_labels(days_left, label):
    assert urgency_for(days_left) == label


def test_estimate_cost_scales_per_head_items():
    estimate = estimate_cost(
        pax_count=10,
        nights=2,
        room_rates=[8000, 12000],
        schedule=[
            ScheduleCost(type="meal", cost=5000, pax_count=5),
            ScheduleCost(type="ceremony", cost=30000, pax_count=None),
            ScheduleCost(type="break", cost=None, pax_count=None),
        ],
        add_ons=[(500, False), (900, True)],
    )

    assert estimate.estimated_rooms == 5
    assert estimate.rooms == 100000
    assert estimate.food == 10000
    assert estimate.catering == 30000
    assert estimate.addons == 5000
    assert estimate.total == 145000
    assert estimate.per_pax == 14500


def test_estimate_cost_defaults_without_blocks():
    estimate = estimate_cost(pax_count=3, nights=0, room_rates=[], schedule=[], add_ons=[])

    assert estimate.nights == 1
    assert estimate.estimated_rooms == 2
    assert estimate.rooms == 16000
    assert estimate.per_pax == 5333
