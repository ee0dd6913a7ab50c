"""Money and volume arithmetic shared by bookings, discounts and attrition."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol, Sequence


DEFAULT_ROOM_RATE = 8000
PAX_PER_ROOM = 2
FOOD_SCHEDULE_TYPES = frozenset({"meal", "break"})


class DiscountTier(Protocol):
    min_rooms: int
    discount_pct: float
    is_active: bool


def round_half_up(value) -> int:
    """Round to the nearest whole currency unit, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def count_nights(check_in: date, check_out: date) -> int:
    return max(0, (check_out - check_in).days)


def select_discount_tier(
    rules: Iterable[DiscountTier],
    aggregate_booked: int,
) -> Optional[DiscountTier]:
    """
    Pick the active rule with the largest min_rooms not above the aggregate.
    Equal thresholds resolve to the higher percentage.
    """
    best = None
    for rule in rules:
        if not rule.is_active or rule.min_rooms > aggregate_booked:
            continue
        if best is None or (rule.min_rooms, rule.discount_pct) > (
            best.min_rooms,
            best.discount_pct,
        ):
            best = rule
    return best


def apply_discount(original_amount, discount_pct) -> int:
    factor = Decimal(1) - Decimal(str(discount_pct)) / Decimal(100)
    return round_half_up(Decimal(str(original_amount)) * factor)


def booking_amount(
    room_rate: int,
    nights: int,
    add_on_prices: Sequence[int],
    discount_pct,
) -> tuple[int, int]:
    """Return (original_amount, discounted_amount) for a single-room booking."""
    original = room_rate * nights + sum(add_on_prices)
    return original, apply_discount(original, discount_pct)


def rooms_at_risk(unsold_rooms: int, release_percent) -> int:
    if unsold_rooms <= 0:
        return 0
    scaled = Decimal(unsold_rooms) * Decimal(str(release_percent)) / Decimal(100)
    return int(scaled.to_integral_value(rounding=ROUND_CEILING))


def representative_rate(blocks: Iterable[tuple[int, int]]) -> int:
    """Capacity-weighted mean rate over (rate, total_qty) pairs."""
    blocks = list(blocks)
    total_rooms = sum(qty for _, qty in blocks)
    if total_rooms <= 0:
        return 0
    weighted = sum(Decimal(rate) * qty for rate, qty in blocks)
    return round_half_up(weighted / total_rooms)


def urgency_for(days_left: int) -> str:
    if days_left <= 0:
        return "OVERDUE"
    if days_left <= 2:
        return "CRITICAL"
    if days_left <= 7:
        return "URGENT"
    if days_left <= 14:
        return "WARNING"
    return "ON_TRACK"


@dataclass(frozen=True)
class ScheduleCost:
    type: str
    cost: Optional[int]
    pax_count: Optional[int]


@dataclass(frozen=True)
class CostEstimate:
    pax_count: int
    rooms: int
    food: int
    catering: int
    addons: int
    total: int
    per_pax: int
    nights: int
    estimated_rooms: int


def estimate_cost(
    pax_count: int,
    nights: int,
    room_rates: Sequence[int],
    schedule: Sequence[ScheduleCost],
    add_ons: Sequence[tuple[int, bool]],
) -> CostEstimate:
    nights = max(1, nights)
    estimated_rooms = math.ceil(pax_count / PAX_PER_ROOM)
    if room_rates:
        avg_rate = Decimal(sum(room_rates)) / len(room_rates)
    else:
        avg_rate = Decimal(DEFAULT_ROOM_RATE)
    room_cost = estimated_rooms * avg_rate * nights

    food = Decimal(0)
    catering = Decimal(0)
    for item in schedule:
        if not item.cost:
            continue
        item_cost = Decimal(item.cost)
        # Per-head items are rescaled to the requested headcount.
        if item.pax_count and item.pax_count > 0:
            item_cost = item_cost / item.pax_count * pax_count
        if item.type in FOOD_SCHEDULE_TYPES:
            food += item_cost
        else:
            catering += item_cost

    addon_cost = Decimal(
        sum(price * pax_count for price, is_included in add_ons if not is_included)
    )

    total = room_cost + food + catering + addon_cost
    return CostEstimate(
        pax_count=pax_count,
        rooms=round_half_up(room_cost),
        food=round_half_up(food),
        catering=round_half_up(catering),
        addons=round_half_up(addon_cost),
        total=round_half_up(total),
        per_pax=round_half_up(total / pax_count) if pax_count > 0 else 0,
        nights=nights,
        estimated_rooms=estimated_rooms,
    )
