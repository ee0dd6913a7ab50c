# roomblock/domain/state_machine.py

from enum import Enum
from typing import Dict, Set, Type

from roomblock.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CANCELLED = "CANCELLED"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


BOOKABLE_EVENT_STATUSES = frozenset({EventStatus.ACTIVE, EventStatus.PUBLISHED})


class _StateMachine:
    """
    Table-driven lifecycle controller.
    Subclasses declare the status enum and the legal transitions.
    """

    _STATUS_TYPE: Type[Enum]
    _ALLOWED_TRANSITIONS: Dict[Enum, Set[Enum]]

    @classmethod
    def can_transition(cls, from_status, to_status) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(cls, from_status, to_status) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(cls, status) -> Set:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @classmethod
    def _ensure_valid_status(cls, status) -> None:
        if not isinstance(status, cls._STATUS_TYPE):
            raise TypeError(
                f"Expected {cls._STATUS_TYPE.__name__}, got {type(status)}"
            )


class BookingStateMachine(_StateMachine):
    """
    Booking lifecycle: a confirmed booking is either checked in or cancelled.
    Both outcomes are final.
    """

    _STATUS_TYPE = BookingStatus
    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.CONFIRMED: {
            BookingStatus.CHECKED_IN,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CHECKED_IN: set(),
        BookingStatus.CANCELLED: set(),
    }


class EventStateMachine(_StateMachine):
    _STATUS_TYPE = EventStatus
    _ALLOWED_TRANSITIONS: Dict[EventStatus, Set[EventStatus]] = {
        EventStatus.DRAFT: {
            EventStatus.ACTIVE,
            EventStatus.PUBLISHED,
        },
        EventStatus.PUBLISHED: {
            EventStatus.ACTIVE,
        },
        EventStatus.ACTIVE: {
            EventStatus.COMPLETED,
            EventStatus.CANCELLED,
        },
        # Completed events may be reopened, cancelled ones restarted as drafts.
        EventStatus.COMPLETED: {
            EventStatus.ACTIVE,
        },
        EventStatus.CANCELLED: {
            EventStatus.DRAFT,
        },
    }
