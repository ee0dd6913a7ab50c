"""Floor/wing allocation planning.

Everything here is a pure function of a guest list and a bucket snapshot:
no I/O, no randomness, and iteration only over lists or sorted keys, so the
same input always yields the same plan.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from roomblock.domain.exceptions import (
    BucketFullError,
    GuestNotFoundError,
    ValidationError,
)


DEFAULT_FLOOR = "1"
DEFAULT_WING = "Main"
UNRESOLVED_PROXIMITY = "unresolved-proximity"

# Lower value is placed first; anything unlisted shares the last slot.
GROUP_PRIORITY = {
    "VIP": 0,
    "Bride Side": 1,
    "Groom Side": 2,
    "Family": 3,
    "Friends": 4,
}
_UNLISTED_PRIORITY = 99

_PROXIMITY_PREFIX_RE = re.compile(r"^(near|next to)\s+", re.IGNORECASE)

BucketKey = tuple[str, str]


@dataclass(frozen=True)
class GuestSnapshot:
    guest_id: str
    name: str
    group: Optional[str] = None
    proximity_request: Optional[str] = None
    floor: Optional[str] = None
    wing: Optional[str] = None

    @property
    def bucket(self) -> Optional[BucketKey]:
        if self.floor is None or self.wing is None:
            return None
        return (self.floor, self.wing)


@dataclass(frozen=True)
class BucketCapacity:
    floor: str
    wing: str
    capacity: int

    @property
    def key(self) -> BucketKey:
        return (self.floor, self.wing)


@dataclass(frozen=True)
class Assignment:
    guest_id: str
    floor: str
    wing: str


@dataclass(frozen=True)
class PlanWarning:
    code: str
    guest_id: str
    message: str


@dataclass(frozen=True)
class AllocationPlan:
    assignments: list[Assignment] = field(default_factory=list)
    unplaced: list[str] = field(default_factory=list)
    warnings: list[PlanWarning] = field(default_factory=list)


def bucket_key(floor: Optional[str], wing: Optional[str]) -> BucketKey:
    """Room blocks without a floor or wing share the default bucket."""
    return (floor or DEFAULT_FLOOR, wing or DEFAULT_WING)


def build_buckets(blocks: Iterable[tuple[Optional[str], Optional[str], int]]) -> list[BucketCapacity]:
    """Sum (floor, wing, total_qty) rows into buckets sorted by key."""
    totals: dict[BucketKey, int] = defaultdict(int)
    for floor, wing, total_qty in blocks:
        totals[bucket_key(floor, wing)] += total_qty
    return [
        BucketCapacity(floor=key[0], wing=key[1], capacity=totals[key])
        for key in sorted(totals)
    ]


class _Occupancy:
    """Running capacity bookkeeping for one planning pass."""

    def __init__(self, buckets: Iterable[BucketCapacity], guests: Iterable[GuestSnapshot]):
        self.capacity: dict[BucketKey, int] = {}
        for bucket in buckets:
            self.capacity[bucket.key] = self.capacity.get(bucket.key, 0) + bucket.capacity
        self.keys = sorted(self.capacity)
        self.occupied: dict[BucketKey, int] = {key: 0 for key in self.keys}
        for guest in guests:
            if guest.bucket in self.occupied:
                self.occupied[guest.bucket] += 1

    def remaining(self, key: BucketKey) -> int:
        return self.capacity[key] - self.occupied[key]

    def take(self, key: BucketKey) -> None:
        self.occupied[key] += 1

    def free(self, key: BucketKey) -> None:
        self.occupied[key] -= 1

    def best_bucket(self, group_size: int) -> Optional[BucketKey]:
        """
        A bucket that holds the whole group if one exists, otherwise the
        bucket with the most room left. Largest remaining capacity wins,
        then key order.
        """
        fitting = [key for key in self.keys if self.remaining(key) >= group_size]
        candidates = fitting or [key for key in self.keys if self.remaining(key) > 0]
        best = None
        for key in candidates:
            if best is None or self.remaining(key) > self.remaining(best):
                best = key
        return best


def _ordered_groups(guests: list[GuestSnapshot]) -> list[list[GuestSnapshot]]:
    groups: dict[str, list[GuestSnapshot]] = {}
    first_seen: dict[str, int] = {}
    for index, guest in enumerate(guests):
        # Ungrouped guests are placed on their own.
        key = f"group:{guest.group}" if guest.group else f"guest:{guest.guest_id}"
        if key not in groups:
            groups[key] = []
            first_seen[key] = index
        groups[key].append(guest)

    def sort_key(key: str) -> tuple[int, int]:
        members = groups[key]
        priority = GROUP_PRIORITY.get(members[0].group or "", _UNLISTED_PRIORITY)
        return (priority, first_seen[key])

    return [groups[key] for key in sorted(groups, key=sort_key)]


def _normalize_name(value: str) -> str:
    return _PROXIMITY_PREFIX_RE.sub("", value.strip()).strip().lower()


def _resolve_proximity(
    guest: GuestSnapshot,
    by_id: Mapping[str, GuestSnapshot],
    by_name: Mapping[str, GuestSnapshot],
) -> Optional[GuestSnapshot]:
    request = guest.proximity_request or ""
    target = by_id.get(request.strip()) or by_name.get(_normalize_name(request))
    if target is None or target.guest_id == guest.guest_id:
        return None
    return target


def plan_auto(
    guests: list[GuestSnapshot],
    buckets: list[BucketCapacity],
) -> AllocationPlan:
    """
    Greedy placement of every guest without a bucket.

    Groups are kept together where a bucket can hold them, and split
    across the roomiest buckets otherwise. Proximity requests then move a
    guest next to the named guest when that bucket still has room, and
    every request still unmet in the final placement is warned about.
    Guests that fit nowhere come back in ``unplaced``.
    """
    occupancy = _Occupancy(buckets, guests)
    pending = [guest for guest in guests if guest.bucket is None]
    placement: dict[str, BucketKey] = {}
    unplaced: set[str] = set()

    for members in _ordered_groups(pending):
        queue = list(members)
        while queue:
            key = occupancy.best_bucket(len(queue))
            if key is None:
                unplaced.update(guest.guest_id for guest in queue)
                break
            room = occupancy.remaining(key)
            for guest in queue[:room]:
                placement[guest.guest_id] = key
                occupancy.take(key)
            queue = queue[room:]

    by_id = {guest.guest_id: guest for guest in guests}
    by_name: dict[str, GuestSnapshot] = {}
    for guest in guests:
        by_name.setdefault(guest.name.strip().lower(), guest)

    requests = [
        (guest, _resolve_proximity(guest, by_id, by_name))
        for guest in pending
        if guest.proximity_request
    ]

    def target_bucket(target: GuestSnapshot) -> Optional[BucketKey]:
        return placement.get(target.guest_id) or target.bucket

    # A target can move for its own request after its requester followed
    # it, so repeat until nothing moves. Each pass moves a guest at most once.
    for _ in range(len(requests)):
        moved = False
        for guest, target in requests:
            if target is None:
                continue
            target_key = target_bucket(target)
            if target_key is None or target_key not in occupancy.capacity:
                continue
            current_key = placement.get(guest.guest_id)
            if target_key == current_key or occupancy.remaining(target_key) <= 0:
                continue
            if current_key is not None:
                occupancy.free(current_key)
            occupancy.take(target_key)
            placement[guest.guest_id] = target_key
            unplaced.discard(guest.guest_id)
            moved = True
        if not moved:
            break

    warnings: list[PlanWarning] = []
    for guest, target in requests:
        if target is None:
            message = f"No guest matches proximity request '{guest.proximity_request}'"
        else:
            target_key = target_bucket(target)
            if target_key is not None and target_key == placement.get(guest.guest_id):
                continue
            if target_key is None or target_key not in occupancy.capacity:
                message = f"{target.name} has no floor/wing to join"
            else:
                message = (
                    f"Floor {target_key[0]} / {target_key[1]} is full; "
                    f"could not place next to {target.name}"
                )
        warnings.append(
            PlanWarning(code=UNRESOLVED_PROXIMITY, guest_id=guest.guest_id, message=message)
        )

    return AllocationPlan(
        assignments=[
            Assignment(guest_id=guest.guest_id, floor=placement[guest.guest_id][0], wing=placement[guest.guest_id][1])
            for guest in pending
            if guest.guest_id in placement
        ],
        unplaced=[guest.guest_id for guest in pending if guest.guest_id in unplaced],
        warnings=warnings,
    )


def plan_manual(
    guests: list[GuestSnapshot],
    buckets: list[BucketCapacity],
    overrides: Mapping[str, BucketKey],
) -> AllocationPlan:
    """
    Check explicit guest -> bucket moves against the current occupancy.

    The whole batch is accepted or rejected. Moving a guest frees the
    seat they held before, and re-assigning a guest to their current
    bucket is a no-op.
    """
    occupancy = _Occupancy(buckets, guests)
    by_id = {guest.guest_id: guest for guest in guests}

    for guest_id, key in overrides.items():
        if guest_id not in by_id:
            raise GuestNotFoundError(f"Guest {guest_id} not found in this event")
        if tuple(key) not in occupancy.capacity:
            raise ValidationError(f"Unknown floor/wing bucket: {key[0]} / {key[1]}")

    for guest_id, key in overrides.items():
        current = by_id[guest_id].bucket
        if current in occupancy.occupied:
            occupancy.free(current)
        occupancy.take(tuple(key))

    for key in occupancy.keys:
        if occupancy.remaining(key) < 0 and any(tuple(target) == key for target in overrides.values()):
            raise BucketFullError(
                floor=key[0],
                wing=key[1],
                capacity=occupancy.capacity[key],
                requested=occupancy.occupied[key],
            )

    return AllocationPlan(
        assignments=[
            Assignment(guest_id=guest_id, floor=key[0], wing=key[1])
            for guest_id, key in overrides.items()
        ],
    )
