from datetime import date, datetime

from pydantic import BaseModel, Field


class RoomBlockCreate(BaseModel):
    room_type: str = Field(min_length=1)
    rate: int = Field(ge=0)
    total_qty: int = Field(ge=0)
    floor: str | None = None
    wing: str | None = None


class AddOnCreate(BaseModel):
    name: str = Field(min_length=1)
    price: int = Field(default=0, ge=0)
    is_included: bool = False


class ScheduleItemCreate(BaseModel):
    title: str = Field(min_length=1)
    type: str = "activity"
    cost: int | None = Field(default=None, ge=0)
    pax_count: int | None = Field(default=None, gt=0)


class EventCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str | None = None
    check_in: date
    check_out: date
    expected_pax: int | None = Field(default=None, gt=0)
    status: str = "draft"
    room_blocks: list[RoomBlockCreate] = []
    add_ons: list[AddOnCreate] = []
    schedule_items: list[ScheduleItemCreate] = []


class EventStatusUpdate(BaseModel):
    status: str


class RoomBlockResponse(BaseModel):
    id: str
    room_type: str
    rate: int
    total_qty: int
    booked_qty: int
    available_qty: int
    floor: str | None = None
    wing: str | None = None


class AddOnResponse(BaseModel):
    id: str
    name: str
    price: int
    is_included: bool


class EventResponse(BaseModel):
    id: str
    name: str
    slug: str
    check_in: str
    check_out: str
    expected_pax: int | None = None
    status: str
    room_blocks: list[RoomBlockResponse]
    add_ons: list[AddOnResponse]


class InventoryResponse(BaseModel):
    event_id: str
    total_rooms: int
    booked_rooms: int
    available_rooms: int
    room_blocks: list[RoomBlockResponse]


class DiscountRuleCreate(BaseModel):
    min_rooms: int = Field(gt=0)
    discount_pct: float
    description: str | None = None


class DiscountRuleResponse(BaseModel):
    id: str
    min_rooms: int
    discount_pct: float
    description: str | None = None
    is_active: bool


class QualifyingTierResponse(BaseModel):
    rule_id: str
    min_rooms: int
    discount_pct: float


class DiscountResponse(BaseModel):
    event_id: str
    discount_pct: float
    aggregate_booked: int
    qualifying_tier: QualifyingTierResponse | None = None


class AttritionRuleCreate(BaseModel):
    release_date: datetime
    release_percent: float
    description: str | None = None


class AttritionRuleResponse(BaseModel):
    id: str
    release_date: str
    release_percent: float
    description: str | None = None
    is_triggered: bool
    triggered_at: str | None = None


class AttritionOutcomeResponse(BaseModel):
    rule_id: str
    release_date: str
    release_percent: float
    newly_triggered: bool
    unsold_rooms: int
    rooms_at_risk: int
    revenue_at_risk: int


class AttritionTimelineEntryResponse(BaseModel):
    rule_id: str
    release_date: str
    release_percent: float
    description: str | None = None
    is_triggered: bool
    days_left: int
    urgency: str
    rooms_at_risk: int
    revenue_at_risk: int


class GuestCreate(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None
    group: str | None = None
    proximity_request: str | None = None
    notes: str | None = None


class GuestResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    group: str | None = None
    proximity_request: str | None = None
    status: str
    allocated_floor: str | None = None
    allocated_wing: str | None = None


class ManualAssignment(BaseModel):
    guest_id: str
    floor: str
    wing: str


class AllocationRequest(BaseModel):
    mode: str = "auto"
    persist: bool = True
    assignments: list[ManualAssignment] = []


class AssignmentResponse(BaseModel):
    guest_id: str
    floor: str
    wing: str


class PlanWarningResponse(BaseModel):
    code: str
    guest_id: str
    message: str


class AllocationResponse(BaseModel):
    persisted: bool
    assignments: list[AssignmentResponse]
    unplaced: list[str]
    warnings: list[PlanWarningResponse]


class CostEstimateResponse(BaseModel):
    event_id: str
    pax_count: int
    nights: int
    estimated_rooms: int
    rooms: int
    food: int
    catering: int
    addons: int
    total: int
    per_pax: int


class BookingRequest(BaseModel):
    event_id: str
    room_block_id: str
    guest_name: str
    guest_email: str | None = None
    guest_phone: str | None = None
    group: str | None = None
    proximity_request: str | None = None
    special_requests: str | None = None
    add_on_ids: list[str] = []


class BookingResponse(BaseModel):
    booking_id: str
    event_id: str
    room_block_id: str
    guest_id: str
    status: str
    original_amount: int
    discount_pct: float
    total_amount: int
    checked_in: bool


class CancellationResponse(BaseModel):
    booking_id: str
    status: str
    released: bool
    promoted_waitlist_id: str | None = None


class RoomChangeRequest(BaseModel):
    room_block_id: str
    reason: str | None = None


class RoomChangeResponse(BaseModel):
    booking: BookingResponse
    from_room_type: str
    to_room_type: str
    change_type: str
    rate_difference: int
    old_amount: int
    new_amount: int


class BulkCheckInRequest(BaseModel):
    booking_ids: list[str]


class CheckInOutcomeResponse(BaseModel):
    booking_id: str
    outcome: str
    guest_name: str | None = None


class BulkCheckInResponse(BaseModel):
    total: int
    checked_in: int
    already_checked_in: int
    cancelled: int
    errors: int
    results: list[CheckInOutcomeResponse]


class WaitlistJoinRequest(BaseModel):
    room_block_id: str
    guest_name: str
    guest_email: str | None = None
    guest_phone: str | None = None


class WaitlistJoinResponse(BaseModel):
    waitlist_id: str
    status: str
    position: int


class OutboxEventResponse(BaseModel):
    id: str
    event_id: str | None = None
    aggregate_type: str
    aggregate_id: str
    event_type: str
    actor: str | None = None
    payload: str
    status: str
    attempts: int
    created_at: str
