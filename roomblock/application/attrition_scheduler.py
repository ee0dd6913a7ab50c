import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from roomblock.domain.pricing import representative_rate, rooms_at_risk, urgency_for
from roomblock.infrastructure.db.models import AttritionRule
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class AttritionOutcome:
    rule_id: str
    release_date: datetime
    release_percent: float
    newly_triggered: bool
    unsold_rooms: int
    rooms_at_risk: int
    revenue_at_risk: int


@dataclass(frozen=True)
class TimelineEntry:
    rule_id: str
    release_date: datetime
    release_percent: float
    description: str | None
    is_triggered: bool
    days_left: int
    urgency: str
    rooms_at_risk: int
    revenue_at_risk: int


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class _Exposure:
    unsold_rooms: int
    rate: int


class AttritionScheduler:
    """
    Date-triggered release rules.

    A rule goes Pending -> Triggered once ``now`` reaches its release date
    and never goes back. The scheduler reports what is at risk; sending
    reminders is left to whoever calls ``sweep``.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def sweep(
        self,
        event_id: str,
        now: datetime | None = None,
        on_triggered: Callable[[Session, AttritionOutcome], None] | None = None,
    ) -> list[AttritionOutcome]:
        """
        Trigger every due rule and list the triggered rules that still have
        rooms at risk. Safe to call repeatedly; only the call that flips a
        rule reports it with ``newly_triggered=True``.

        ``on_triggered`` runs inside the transaction that flips the rule, so
        if it fails the rule stays Pending and the next sweep tries again.
        """
        now = as_utc(now or datetime.now(timezone.utc))
        with self._session_factory.begin() as db:
            events = EventRepository(db)
            events.require(event_id)
            rules = events.attrition_rules(event_id)
            exposure = self._exposure(db, event_id)

            outcomes: list[AttritionOutcome] = []
            for rule in rules:
                newly = False
                if not rule.is_triggered and now >= as_utc(rule.release_date):
                    newly = self._trigger(db, rule.id, now)
                    db.refresh(rule)
                if not rule.is_triggered:
                    continue

                at_risk = rooms_at_risk(exposure.unsold_rooms, rule.release_percent)
                if at_risk <= 0:
                    continue
                outcome = AttritionOutcome(
                    rule_id=rule.id,
                    release_date=as_utc(rule.release_date),
                    release_percent=rule.release_percent,
                    newly_triggered=newly,
                    unsold_rooms=exposure.unsold_rooms,
                    rooms_at_risk=at_risk,
                    revenue_at_risk=at_risk * exposure.rate,
                )
                if newly and on_triggered is not None:
                    on_triggered(db, outcome)
                outcomes.append(outcome)

        triggered = sum(1 for outcome in outcomes if outcome.newly_triggered)
        if triggered:
            logger.info("Attrition sweep triggered %s rule(s). event_id=%s", triggered, event_id)
        return outcomes

    def timeline(self, event_id: str, now: datetime | None = None) -> list[TimelineEntry]:
        now = as_utc(now or datetime.now(timezone.utc))
        with self._session_factory.begin() as db:
            events = EventRepository(db)
            events.require(event_id)
            exposure = self._exposure(db, event_id)

            entries = []
            for rule in events.attrition_rules(event_id):
                seconds_left = (as_utc(rule.release_date) - now).total_seconds()
                days_left = math.ceil(seconds_left / _SECONDS_PER_DAY)
                at_risk = rooms_at_risk(exposure.unsold_rooms, rule.release_percent)
                entries.append(
                    TimelineEntry(
                        rule_id=rule.id,
                        release_date=as_utc(rule.release_date),
                        release_percent=rule.release_percent,
                        description=rule.description,
                        is_triggered=rule.is_triggered,
                        days_left=days_left,
                        urgency=urgency_for(days_left),
                        rooms_at_risk=at_risk,
                        revenue_at_risk=at_risk * exposure.rate,
                    )
                )
            return entries

    def _trigger(self, db: Session, rule_id: str, now: datetime) -> bool:
        stmt = (
            update(AttritionRule)
            .where(AttritionRule.id == rule_id)
            .where(AttritionRule.is_triggered.is_(False))
            .values(is_triggered=True, triggered_at=now)
            .execution_options(synchronize_session=False)
        )
        return db.execute(stmt).rowcount == 1

    def _exposure(self, db: Session, event_id: str) -> _Exposure:
        blocks = RoomBlockRepository(db).list_for_event(event_id)
        total = sum(block.total_qty for block in blocks)
        booked = sum(block.booked_qty for block in blocks)
        return _Exposure(
            unsold_rooms=max(0, total - booked),
            rate=representative_rate((block.rate, block.total_qty) for block in blocks),
        )
