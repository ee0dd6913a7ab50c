

class RoomBlockEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the room block engine.
    """


class ValidationError(RoomBlockEngineError):
    """Raised for bad input. Never retried."""


class NotFoundError(RoomBlockEngineError):
    """Raised when a referenced record does not exist."""


class EventNotFoundError(NotFoundError):
    pass


class RoomBlockNotFoundError(NotFoundError):
    pass


class BookingNotFoundError(NotFoundError):
    pass


class GuestNotFoundError(NotFoundError):
    pass


class ExhaustedError(RoomBlockEngineError):
    """Raised when a room block has no remaining capacity."""

    def __init__(self, room_block_id: str, requested: int = 1):
        self.room_block_id = room_block_id
        self.requested = requested
        super().__init__(
            f"Room block {room_block_id} cannot hold {requested} more room(s)"
        )


class ConcurrencyConflictError(RoomBlockEngineError):
    """
    Raised when a reservation kept colliding with concurrent writers
    after the bounded number of attempts.
    """


class PersistenceError(RoomBlockEngineError):
    """
    Raised when a booking could not be stored.
    Any inventory reserved for it has already been released.
    """


class BucketFullError(RoomBlockEngineError):
    """Raised when a manual allocation would overfill a floor/wing bucket."""

    def __init__(self, floor: str, wing: str, capacity: int, requested: int):
        self.floor = floor
        self.wing = wing
        self.capacity = capacity
        self.requested = requested
        super().__init__(
            f"Bucket floor={floor} wing={wing} holds {capacity} guest(s), "
            f"{requested} requested"
        )


class DuplicateBookingError(RoomBlockEngineError):
    """Raised when a guest email already holds a booking for the event."""


class InvalidStateTransitionError(RoomBlockEngineError):
    """
    Raised when an illegal state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)
