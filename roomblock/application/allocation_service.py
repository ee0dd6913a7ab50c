import logging
from typing import Mapping, Optional

from sqlalchemy.orm import sessionmaker

from roomblock.application.activity import ActivitySink, LoggingActivitySink
from roomblock.domain.allocation import (
    AllocationPlan,
    BucketKey,
    GuestSnapshot,
    build_buckets,
    plan_auto,
    plan_manual,
)
from roomblock.domain.exceptions import ValidationError
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


logger = logging.getLogger(__name__)

MODE_AUTO = "auto"
MODE_MANUAL = "manual"


class AllocationService:
    """
    Runs the floor/wing planner against a consistent snapshot and writes
    the result in the same transaction.

    The event's room blocks are locked before guests are read, so two
    operators saving at once are checked one after the other and cannot
    both push a bucket past capacity.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        activity_sink: ActivitySink | None = None,
    ):
        self._session_factory = session_factory
        self._activity = activity_sink or LoggingActivitySink()

    def plan(
        self,
        event_id: str,
        mode: str,
        overrides: Optional[Mapping[str, BucketKey]] = None,
        persist: bool = True,
    ) -> AllocationPlan:
        if mode not in (MODE_AUTO, MODE_MANUAL):
            raise ValidationError(f"Unknown allocation mode: {mode}")
        if mode == MODE_MANUAL and not overrides:
            raise ValidationError("Manual allocation needs at least one guest assignment")

        with self._session_factory.begin() as db:
            events = EventRepository(db)
            events.require(event_id)

            blocks = RoomBlockRepository(db).lock_for_event(event_id)
            buckets = build_buckets((block.floor, block.wing, block.total_qty) for block in blocks)
            guests = [guest for guest in events.guests(event_id) if guest.status != "cancelled"]
            snapshot = [
                GuestSnapshot(
                    guest_id=guest.id,
                    name=guest.name,
                    group=guest.group,
                    proximity_request=guest.proximity_request,
                    floor=guest.allocated_floor,
                    wing=guest.allocated_wing,
                )
                for guest in guests
            ]

            if mode == MODE_AUTO:
                result = plan_auto(snapshot, buckets)
            else:
                result = plan_manual(snapshot, buckets, overrides)

            if persist:
                by_id = {guest.id: guest for guest in guests}
                for assignment in result.assignments:
                    guest = by_id[assignment.guest_id]
                    guest.allocated_floor = assignment.floor
                    guest.allocated_wing = assignment.wing

        if persist and result.assignments:
            logger.info(
                "Allocation saved. event_id=%s mode=%s assigned=%s unplaced=%s warnings=%s",
                event_id,
                mode,
                len(result.assignments),
                len(result.unplaced),
                len(result.warnings),
            )
            self._activity.record(
                event_id=event_id,
                action="auto_allocate" if mode == MODE_AUTO else "allocation_saved",
                details=(
                    f"Allocated {len(result.assignments)} guest(s) across "
                    f"{len(buckets)} floor/wing bucket(s)"
                ),
                actor="Allocator" if mode == MODE_AUTO else "Agent",
            )
        return result
