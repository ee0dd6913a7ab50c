import json
import logging
from uuid import uuid4
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from roomblock.infrastructure.db.models import OutboxEvent


logger = logging.getLogger(__name__)


class ActivitySink(Protocol):
    def record(
        self,
        event_id: str,
        action: str,
        details: str,
        actor: str,
        aggregate_id: str | None = None,
    ) -> None:
        ...


def add_outbox_event(
    db: Session,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict,
    dedupe_key: str,
    event_id: str | None = None,
    actor: str | None = None,
) -> bool:
    """Queue an outbox row unless one with the same dedupe key exists."""
    existing = db.execute(
        select(OutboxEvent).where(OutboxEvent.dedupe_key == dedupe_key)
    ).scalar_one_or_none()
    if existing:
        return False

    db.add(
        OutboxEvent(
            event_id=event_id,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            actor=actor,
            payload=json.dumps(payload, sort_keys=True, default=str),
            dedupe_key=dedupe_key,
            status="PENDING",
            attempts=0,
        )
    )
    return True


def record_activity(
    db: Session,
    event_id: str,
    action: str,
    details: str,
    actor: str,
    aggregate_id: str | None = None,
) -> None:
    """Queue one activity entry inside the caller's transaction."""
    add_outbox_event(
        db=db,
        aggregate_type="activity",
        aggregate_id=aggregate_id or event_id,
        event_type=action.upper(),
        payload={"event_id": event_id, "details": details, "actor": actor},
        dedupe_key=f"activity:{uuid4()}",
        event_id=event_id,
        actor=actor,
    )


class OutboxActivitySink:
    """
    Writes activity entries to the outbox in their own transaction.
    Failures are logged and dropped; callers never wait on or see them.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def record(
        self,
        event_id: str,
        action: str,
        details: str,
        actor: str,
        aggregate_id: str | None = None,
    ) -> None:
        try:
            with self._session_factory.begin() as db:
                record_activity(db, event_id, action, details, actor, aggregate_id)
        except SQLAlchemyError:
            logger.warning(
                "Activity entry dropped. event_id=%s action=%s",
                event_id,
                action,
                exc_info=True,
            )


class LoggingActivitySink:
    def record(
        self,
        event_id: str,
        action: str,
        details: str,
        actor: str,
        aggregate_id: str | None = None,
    ) -> None:
        logger.info("activity event_id=%s action=%s actor=%s %s", event_id, action, actor, details)
