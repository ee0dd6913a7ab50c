# roomblock/infrastructure/repositories/room_block_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import case, func, select, update

from roomblock.infrastructure.db.models import RoomBlock


class RoomBlockRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, room_block_id: str) -> RoomBlock | None:
        stmt = select(RoomBlock).where(RoomBlock.id == room_block_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_event(self, event_id: str) -> list[RoomBlock]:
        stmt = (
            select(RoomBlock)
            .where(RoomBlock.event_id == event_id)
            .order_by(RoomBlock.room_type, RoomBlock.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def lock_for_event(self, event_id: str) -> list[RoomBlock]:
        """
        SELECT ... FOR UPDATE over every block of the event.
        Serialises allocation writers on the same event.
        """
        stmt = (
            select(RoomBlock)
            .where(RoomBlock.event_id == event_id)
            .order_by(RoomBlock.id)
            .with_for_update()
        )
        return list(self.db.execute(stmt).scalars().all())

    def aggregate_booked(self, event_id: str) -> int:
        stmt = select(func.coalesce(func.sum(RoomBlock.booked_qty), 0)).where(
            RoomBlock.event_id == event_id
        )
        return int(self.db.execute(stmt).scalar_one())

    def totals_for_event(self, event_id: str) -> tuple[int, int]:
        """Return (total_rooms, booked_rooms) read fresh from the table."""
        stmt = select(
            func.coalesce(func.sum(RoomBlock.total_qty), 0),
            func.coalesce(func.sum(RoomBlock.booked_qty), 0),
        ).where(RoomBlock.event_id == event_id)
        total, booked = self.db.execute(stmt).one()
        return int(total), int(booked)

    def increment_booked_if_available(self, room_block_id: str, qty: int) -> bool:
        """
        Single conditional UPDATE; the capacity check and the increment
        happen in one statement, so concurrent callers cannot both pass.
        """
        stmt = (
            update(RoomBlock)
            .where(RoomBlock.id == room_block_id)
            .where(RoomBlock.booked_qty + qty <= RoomBlock.total_qty)
            .values(booked_qty=RoomBlock.booked_qty + qty)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def decrement_booked(self, room_block_id: str, qty: int) -> bool:
        stmt = (
            update(RoomBlock)
            .where(RoomBlock.id == room_block_id)
            .values(
                booked_qty=case(
                    (RoomBlock.booked_qty >= qty, RoomBlock.booked_qty - qty),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1
