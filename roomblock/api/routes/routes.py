from datetime import datetime, timezone
import logging
import re
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy import select

from roomblock.infrastructure.db.session import SessionLocal
from roomblock.application.activity import OutboxActivitySink, add_outbox_event, record_activity
from roomblock.application.allocation_service import AllocationService
from roomblock.application.attrition_scheduler import AttritionOutcome, AttritionScheduler, as_utc
from roomblock.application.booking_service import (
    CHECK_IN_ALREADY,
    CHECK_IN_CANCELLED,
    CHECK_IN_DONE,
    CHECK_IN_ERROR,
    BookingService,
)
from roomblock.application.cost_estimator import CostEstimator
from roomblock.application.discount_resolver import DiscountTierResolver
from roomblock.api.schemas.schemas import (
    AddOnResponse,
    AllocationRequest,
    AllocationResponse,
    AssignmentResponse,
    AttritionOutcomeResponse,
    AttritionRuleCreate,
    AttritionRuleResponse,
    AttritionTimelineEntryResponse,
    BookingRequest,
    BookingResponse,
    BulkCheckInRequest,
    BulkCheckInResponse,
    CancellationResponse,
    CheckInOutcomeResponse,
    CostEstimateResponse,
    DiscountResponse,
    DiscountRuleCreate,
    DiscountRuleResponse,
    EventCreate,
    EventResponse,
    EventStatusUpdate,
    GuestCreate,
    GuestResponse,
    InventoryResponse,
    OutboxEventResponse,
    PlanWarningResponse,
    QualifyingTierResponse,
    RoomBlockResponse,
    RoomChangeRequest,
    RoomChangeResponse,
    WaitlistJoinRequest,
    WaitlistJoinResponse,
)
from roomblock.domain.exceptions import (
    BucketFullError,
    ConcurrencyConflictError,
    DuplicateBookingError,
    ExhaustedError,
    InvalidStateTransitionError,
    NotFoundError,
    PersistenceError,
    RoomBlockEngineError,
    ValidationError,
)
from roomblock.domain.state_machine import EventStateMachine, EventStatus
from roomblock.domain.validation import GuestInfo, normalize_guest_info, validate_percent
from roomblock.infrastructure.db.models import (
    AddOn,
    AttritionRule,
    Booking,
    DiscountRule,
    Event,
    Guest,
    OutboxEvent,
    RoomBlock,
    ScheduleItem,
)
from roomblock.infrastructure.repositories.event_repository import EventRepository
from roomblock.infrastructure.repositories.room_block_repository import RoomBlockRepository


router = APIRouter()
logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"[^a-z0-9]+")

# ExhaustedError and ConcurrencyConflictError carry fixed client messages.
_ERROR_STATUS: list[tuple[type[RoomBlockEngineError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (BucketFullError, status.HTTP_409_CONFLICT),
    (DuplicateBookingError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _http_error(exc: RoomBlockEngineError) -> HTTPException:
    if isinstance(exc, ExhaustedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Room no longer available, choose another",
        )
    if isinstance(exc, ConcurrencyConflictError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Temporary failure, please retry",
        )
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=str(exc),
    )


def _slugify(db: Session, name: str) -> str:
    base = _SLUG_RE.sub("-", name.lower()).strip("-") or "event"
    if not EventRepository(db).slug_exists(base):
        return base
    return f"{base}-{uuid4().hex[:6]}"


def _parse_event_status(value: str) -> EventStatus:
    try:
        return EventStatus(value.lower())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown event status: {value}",
        ) from exc


def _require_event(db: Session, event_id: str) -> Event:
    event = EventRepository(db).get_by_id(event_id)
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return event


def _room_block_response(block: RoomBlock) -> RoomBlockResponse:
    return RoomBlockResponse(
        id=block.id,
        room_type=block.room_type,
        rate=block.rate,
        total_qty=block.total_qty,
        booked_qty=block.booked_qty,
        available_qty=max(0, block.total_qty - block.booked_qty),
        floor=block.floor,
        wing=block.wing,
    )


def _event_response(db: Session, event: Event) -> EventResponse:
    events = EventRepository(db)
    return EventResponse(
        id=event.id,
        name=event.name,
        slug=event.slug,
        check_in=event.check_in.isoformat(),
        check_out=event.check_out.isoformat(),
        expected_pax=event.expected_pax,
        status=event.status.value,
        room_blocks=[
            _room_block_response(block)
            for block in RoomBlockRepository(db).list_for_event(event.id)
        ],
        add_ons=[
            AddOnResponse(
                id=add_on.id,
                name=add_on.name,
                price=add_on.price,
                is_included=add_on.is_included,
            )
            for add_on in events.add_ons(event.id)
        ],
    )


def _attrition_rule_response(rule: AttritionRule) -> AttritionRuleResponse:
    return AttritionRuleResponse(
        id=rule.id,
        release_date=as_utc(rule.release_date).isoformat(),
        release_percent=rule.release_percent,
        description=rule.description,
        is_triggered=rule.is_triggered,
        triggered_at=as_utc(rule.triggered_at).isoformat() if rule.triggered_at else None,
    )


def _guest_response(guest: Guest) -> GuestResponse:
    return GuestResponse(
        id=guest.id,
        name=guest.name,
        email=guest.email,
        phone=guest.phone,
        group=guest.group,
        proximity_request=guest.proximity_request,
        status=guest.status,
        allocated_floor=guest.allocated_floor,
        allocated_wing=guest.allocated_wing,
    )


def _outbox_response(item: OutboxEvent) -> OutboxEventResponse:
    return OutboxEventResponse(
        id=item.id,
        event_id=item.event_id,
        aggregate_type=item.aggregate_type,
        aggregate_id=item.aggregate_id,
        event_type=item.event_type,
        actor=item.actor,
        payload=item.payload,
        status=item.status,
        attempts=item.attempts,
        created_at=item.created_at.isoformat(),
    )


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.id,
        event_id=booking.event_id,
        room_block_id=booking.room_block_id,
        guest_id=booking.guest_id,
        status=booking.status.value,
        original_amount=booking.original_amount,
        discount_pct=booking.discount_pct,
        total_amount=booking.total_amount,
        checked_in=booking.checked_in,
    )


def _booking_service(session_factory: sessionmaker) -> BookingService:
    return BookingService(
        session_factory,
        activity_sink=OutboxActivitySink(session_factory),
    )


@router.get("/health")
def health():
    return {"message": "Room Block Engine is running"}


# -----------------------------
# Events
# -----------------------------
@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(request: EventCreate, db: Session = Depends(get_db)):
    if request.check_out <= request.check_in:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="check_out must be after check_in",
        )
    initial_status = _parse_event_status(request.status)
    if request.slug and EventRepository(db).slug_exists(request.slug):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Slug already in use",
        )

    event = Event(
        name=request.name,
        slug=request.slug or _slugify(db, request.name),
        check_in=request.check_in,
        check_out=request.check_out,
        expected_pax=request.expected_pax,
        status=initial_status,
    )
    db.add(event)
    db.flush()

    for block in request.room_blocks:
        db.add(
            RoomBlock(
                event_id=event.id,
                room_type=block.room_type,
                rate=block.rate,
                total_qty=block.total_qty,
                booked_qty=0,
                floor=block.floor,
                wing=block.wing,
            )
        )
    for add_on in request.add_ons:
        db.add(
            AddOn(
                event_id=event.id,
                name=add_on.name,
                price=add_on.price,
                is_included=add_on.is_included,
            )
        )
    for item in request.schedule_items:
        db.add(
            ScheduleItem(
                event_id=event.id,
                title=item.title,
                type=item.type,
                cost=item.cost,
                pax_count=item.pax_count,
            )
        )
    db.flush()

    record_activity(
        db,
        event_id=event.id,
        action="event_created",
        details=f"Event {event.name} created with {len(request.room_blocks)} room block(s)",
        actor="Agent",
    )
    return _event_response(db, event)


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return _event_response(db, _require_event(db, event_id))


@router.patch("/events/{event_id}/status", response_model=EventResponse)
def change_event_status(
    event_id: str,
    request: EventStatusUpdate,
    db: Session = Depends(get_db),
):
    event = _require_event(db, event_id)
    target = _parse_event_status(request.status)
    try:
        EventStateMachine.validate_transition(event.status, target)
    except InvalidStateTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    previous = event.status
    event.status = target
    db.flush()
    record_activity(
        db,
        event_id=event.id,
        action="event_status_changed",
        details=f"Status changed from {previous.value} to {target.value}",
        actor="Agent",
    )
    return _event_response(db, event)


@router.get("/events/{event_id}/inventory", response_model=InventoryResponse)
def get_inventory(event_id: str, db: Session = Depends(get_db)):
    event = _require_event(db, event_id)
    repo = RoomBlockRepository(db)
    total, booked = repo.totals_for_event(event.id)
    return InventoryResponse(
        event_id=event.id,
        total_rooms=total,
        booked_rooms=booked,
        available_rooms=max(0, total - booked),
        room_blocks=[_room_block_response(block) for block in repo.list_for_event(event.id)],
    )


# -----------------------------
# Discounts
# -----------------------------
@router.post(
    "/events/{event_id}/discount-rules",
    response_model=DiscountRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_discount_rule(
    event_id: str,
    request: DiscountRuleCreate,
    db: Session = Depends(get_db),
):
    try:
        validate_percent(request.discount_pct, "discount_pct")
    except ValidationError as exc:
        raise _http_error(exc) from exc
    event = _require_event(db, event_id)

    rule = DiscountRule(
        event_id=event.id,
        min_rooms=request.min_rooms,
        discount_pct=request.discount_pct,
        description=request.description,
        is_active=True,
    )
    db.add(rule)
    db.flush()
    return DiscountRuleResponse(
        id=rule.id,
        min_rooms=rule.min_rooms,
        discount_pct=rule.discount_pct,
        description=rule.description,
        is_active=rule.is_active,
    )


@router.get("/events/{event_id}/discount-rules", response_model=list[DiscountRuleResponse])
def list_discount_rules(event_id: str, db: Session = Depends(get_db)):
    event = _require_event(db, event_id)
    return [
        DiscountRuleResponse(
            id=rule.id,
            min_rooms=rule.min_rooms,
            discount_pct=rule.discount_pct,
            description=rule.description,
            is_active=rule.is_active,
        )
        for rule in EventRepository(db).discount_rules(event.id)
    ]


@router.get("/events/{event_id}/discount", response_model=DiscountResponse)
def get_current_discount(
    event_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        resolution = DiscountTierResolver(session_factory).resolve(event_id)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    tier = resolution.qualifying_tier
    return DiscountResponse(
        event_id=event_id,
        discount_pct=resolution.percent,
        aggregate_booked=resolution.aggregate_booked,
        qualifying_tier=(
            QualifyingTierResponse(
                rule_id=tier.rule_id,
                min_rooms=tier.min_rooms,
                discount_pct=tier.discount_pct,
            )
            if tier
            else None
        ),
    )


# -----------------------------
# Attrition
# -----------------------------
@router.post(
    "/events/{event_id}/attrition-rules",
    response_model=AttritionRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_attrition_rule(
    event_id: str,
    request: AttritionRuleCreate,
    db: Session = Depends(get_db),
):
    try:
        validate_percent(request.release_percent, "release_percent")
    except ValidationError as exc:
        raise _http_error(exc) from exc
    event = _require_event(db, event_id)

    rule = AttritionRule(
        event_id=event.id,
        release_date=as_utc(request.release_date),
        release_percent=request.release_percent,
        description=request.description,
        is_triggered=False,
    )
    db.add(rule)
    db.flush()
    return _attrition_rule_response(rule)


@router.get("/events/{event_id}/attrition-rules", response_model=list[AttritionRuleResponse])
def list_attrition_rules(event_id: str, db: Session = Depends(get_db)):
    event = _require_event(db, event_id)
    return [_attrition_rule_response(rule) for rule in EventRepository(db).attrition_rules(event.id)]


@router.post("/events/{event_id}/attrition/sweep", response_model=list[AttritionOutcomeResponse])
def sweep_attrition(
    event_id: str,
    now: datetime | None = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    def queue_release_reminder(db: Session, outcome: AttritionOutcome) -> None:
        # Reminder delivery is left to whoever drains the outbox.
        add_outbox_event(
            db=db,
            aggregate_type="attrition_rule",
            aggregate_id=outcome.rule_id,
            event_type="ATTRITION_RELEASE_DUE",
            payload={
                "event_id": event_id,
                "rule_id": outcome.rule_id,
                "release_date": outcome.release_date.isoformat(),
                "release_percent": outcome.release_percent,
                "rooms_at_risk": outcome.rooms_at_risk,
                "revenue_at_risk": outcome.revenue_at_risk,
            },
            dedupe_key=f"attrition:{outcome.rule_id}:release-due",
            event_id=event_id,
            actor="System",
        )
        logger.info(
            "Queued attrition reminder. event_id=%s rule_id=%s rooms_at_risk=%s",
            event_id,
            outcome.rule_id,
            outcome.rooms_at_risk,
        )

    try:
        outcomes = AttritionScheduler(session_factory).sweep(
            event_id,
            now=now,
            on_triggered=queue_release_reminder,
        )
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return [
        AttritionOutcomeResponse(
            rule_id=outcome.rule_id,
            release_date=outcome.release_date.isoformat(),
            release_percent=outcome.release_percent,
            newly_triggered=outcome.newly_triggered,
            unsold_rooms=outcome.unsold_rooms,
            rooms_at_risk=outcome.rooms_at_risk,
            revenue_at_risk=outcome.revenue_at_risk,
        )
        for outcome in outcomes
    ]


@router.get(
    "/events/{event_id}/attrition/timeline",
    response_model=list[AttritionTimelineEntryResponse],
)
def attrition_timeline(
    event_id: str,
    now: datetime | None = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        entries = AttritionScheduler(session_factory).timeline(event_id, now=now)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return [
        AttritionTimelineEntryResponse(
            rule_id=entry.rule_id,
            release_date=entry.release_date.isoformat(),
            release_percent=entry.release_percent,
            description=entry.description,
            is_triggered=entry.is_triggered,
            days_left=entry.days_left,
            urgency=entry.urgency,
            rooms_at_risk=entry.rooms_at_risk,
            revenue_at_risk=entry.revenue_at_risk,
        )
        for entry in entries
    ]


# -----------------------------
# Guests and allocation
# -----------------------------
@router.post(
    "/events/{event_id}/guests",
    response_model=GuestResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_guest(event_id: str, request: GuestCreate, db: Session = Depends(get_db)):
    try:
        info = normalize_guest_info(
            GuestInfo(
                name=request.name,
                email=request.email,
                phone=request.phone,
                group=request.group,
                proximity_request=request.proximity_request,
                special_requests=request.notes,
            )
        )
    except ValidationError as exc:
        raise _http_error(exc) from exc
    event = _require_event(db, event_id)

    guest = Guest(
        event_id=event.id,
        name=info.name,
        email=info.email,
        phone=info.phone,
        group=info.group,
        proximity_request=info.proximity_request,
        notes=info.special_requests,
        status="invited",
    )
    db.add(guest)
    db.flush()
    return _guest_response(guest)


@router.get("/events/{event_id}/guests", response_model=list[GuestResponse])
def list_guests(event_id: str, db: Session = Depends(get_db)):
    event = _require_event(db, event_id)
    return [_guest_response(guest) for guest in EventRepository(db).guests(event.id)]


@router.post("/events/{event_id}/allocation", response_model=AllocationResponse)
def plan_allocation(
    event_id: str,
    request: AllocationRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    overrides = {item.guest_id: (item.floor, item.wing) for item in request.assignments}
    service = AllocationService(
        session_factory,
        activity_sink=OutboxActivitySink(session_factory),
    )
    try:
        plan = service.plan(
            event_id,
            mode=request.mode,
            overrides=overrides or None,
            persist=request.persist,
        )
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return AllocationResponse(
        persisted=request.persist,
        assignments=[
            AssignmentResponse(guest_id=item.guest_id, floor=item.floor, wing=item.wing)
            for item in plan.assignments
        ],
        unplaced=plan.unplaced,
        warnings=[
            PlanWarningResponse(code=item.code, guest_id=item.guest_id, message=item.message)
            for item in plan.warnings
        ],
    )


@router.get("/events/{event_id}/cost-estimate", response_model=CostEstimateResponse)
def cost_estimate(
    event_id: str,
    pax: int | None = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        estimate = CostEstimator(session_factory).estimate(event_id, pax_count=pax)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return CostEstimateResponse(
        event_id=event_id,
        pax_count=estimate.pax_count,
        nights=estimate.nights,
        estimated_rooms=estimate.estimated_rooms,
        rooms=estimate.rooms,
        food=estimate.food,
        catering=estimate.catering,
        addons=estimate.addons,
        total=estimate.total,
        per_pax=estimate.per_pax,
    )


# -----------------------------
# Bookings
# -----------------------------
@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    guest = GuestInfo(
        name=request.guest_name,
        email=request.guest_email,
        phone=request.guest_phone,
        group=request.group,
        proximity_request=request.proximity_request,
        special_requests=request.special_requests,
    )
    try:
        result = _booking_service(session_factory).create_booking(
            event_id=request.event_id,
            room_block_id=request.room_block_id,
            guest_info=guest,
            add_on_ids=request.add_on_ids,
        )
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    booking = result.booking
    return BookingResponse(
        booking_id=booking.id,
        event_id=booking.event_id,
        room_block_id=booking.room_block_id,
        guest_id=booking.guest_id,
        status=booking.status.value,
        original_amount=result.original_amount,
        discount_pct=result.discount.percent,
        total_amount=result.final_amount,
        checked_in=booking.checked_in,
    )


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationResponse)
def cancel_booking(
    booking_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        result = _booking_service(session_factory).cancel_booking(booking_id)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return CancellationResponse(
        booking_id=result.booking_id,
        status=result.status.value,
        released=result.released,
        promoted_waitlist_id=result.promoted_waitlist_id,
    )


@router.post("/bookings/{booking_id}/check-in", response_model=BookingResponse)
def check_in_booking(
    booking_id: str,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        booking = _booking_service(session_factory).check_in(booking_id)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return _booking_response(booking)


@router.post("/bookings/{booking_id}/change-room", response_model=RoomChangeResponse)
def change_booking_room(
    booking_id: str,
    request: RoomChangeRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        result = _booking_service(session_factory).change_room(
            booking_id,
            new_room_block_id=request.room_block_id,
            reason=request.reason,
        )
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return RoomChangeResponse(
        booking=_booking_response(result.booking),
        from_room_type=result.from_room_type,
        to_room_type=result.to_room_type,
        change_type=result.change_type,
        rate_difference=result.rate_difference,
        old_amount=result.old_amount,
        new_amount=result.new_amount,
    )


@router.post("/events/{event_id}/bulk-check-in", response_model=BulkCheckInResponse)
def bulk_check_in(
    event_id: str,
    request: BulkCheckInRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        result = _booking_service(session_factory).bulk_check_in(event_id, request.booking_ids)
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return BulkCheckInResponse(
        total=len(result.results),
        checked_in=result.count(CHECK_IN_DONE),
        already_checked_in=result.count(CHECK_IN_ALREADY),
        cancelled=result.count(CHECK_IN_CANCELLED),
        errors=result.count(CHECK_IN_ERROR),
        results=[
            CheckInOutcomeResponse(
                booking_id=item.booking_id,
                outcome=item.outcome,
                guest_name=item.guest_name,
            )
            for item in result.results
        ],
    )


@router.post(
    "/events/{event_id}/waitlist",
    response_model=WaitlistJoinResponse,
    status_code=status.HTTP_201_CREATED,
)
def join_waitlist(
    event_id: str,
    request: WaitlistJoinRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    guest = GuestInfo(
        name=request.guest_name,
        email=request.guest_email,
        phone=request.guest_phone,
    )
    try:
        entry = _booking_service(session_factory).join_waitlist(
            event_id=event_id,
            room_block_id=request.room_block_id,
            guest_info=guest,
        )
    except RoomBlockEngineError as exc:
        raise _http_error(exc) from exc

    return WaitlistJoinResponse(
        waitlist_id=entry.id,
        status=entry.status,
        position=entry.position,
    )


# -----------------------------
# Outbox
# -----------------------------
@router.get("/outbox/events", response_model=list[OutboxEventResponse])
def list_outbox_events(
    status_filter: str = "PENDING",
    event_type: str | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    safe_limit = max(1, min(limit, 200))
    stmt = select(OutboxEvent).where(OutboxEvent.status == status_filter)
    if event_type:
        stmt = stmt.where(OutboxEvent.event_type == event_type)
    stmt = stmt.order_by(OutboxEvent.created_at, OutboxEvent.id).limit(safe_limit)
    return [_outbox_response(item) for item in db.execute(stmt).scalars().all()]


@router.post("/outbox/events/{outbox_id}/mark-published", response_model=OutboxEventResponse)
def mark_outbox_event_published(
    outbox_id: str,
    db: Session = Depends(get_db),
):
    item = db.execute(select(OutboxEvent).where(OutboxEvent.id == outbox_id)).scalar_one_or_none()
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Outbox event not found",
        )

    item.status = "PUBLISHED"
    item.published_at = datetime.now(timezone.utc)
    item.attempts += 1
    return _outbox_response(item)
