"""
Booking creation and the changes that move capacity after it: cancellation,
rescheduling and visitor-count edits.

Each runs as one database transaction that starts by locking the slot rows it
touches, so concurrent writers of one slot are serialized and the oversell
guard always sees committed counters. External collaborators are notified only
after commit.
"""
import logging

from sqlalchemy import select

from models import db
from models.booking import Booking
from schemas.bookings import BookingCreate
from services import lock_manager, slot_store
from services.errors import (
    CapacityExceeded,
    InvalidInput,
    InvalidTransition,
    NotFound,
    TransactionConflict,
)
from services.notifications import BookingCreated, notify_booking_created
from services.transactions import atomic, consistent_read
from utils import clock
from utils.audit import log_event

logger = logging.getLogger(__name__)

INITIAL_STATUS = "pending"
CANCELABLE_STATUSES = ("pending", "confirmed")

# bookings whose slot or party size may still change
EDITABLE_STATUSES = ("pending", "confirmed")

# status-only moves; cancellation has its own path because it returns capacity
STATUS_TRANSITIONS = {
    "pending": ("confirmed",),
    "confirmed": ("completed",),
}


def _refuse_over_capacity(slot, requested: int, held: int):
    effective = slot.original_capacity - slot.booked_count - held
    if requested > effective:
        logger.info(
            "capacity refused on slot %s: effective=%s requested=%s",
            slot.id, effective, requested,
        )
        raise CapacityExceeded(
            f"Not enough capacity. Only {max(effective, 0)} available, "
            f"but {requested} requested.",
            available=max(effective, 0),
            requested=requested,
        )


def create_booking(tenant_id: int, data: BookingCreate) -> Booking:
    with atomic():
        slot_store.get_active_tenant(tenant_id)

        # exclusive read on the slot before anything is checked
        slot = slot_store.lock_slot(tenant_id, data.slot_id, data.service_id)
        slot_store.ensure_bookable(slot)

        if data.visitor_count != data.adult_count + data.child_count:
            raise InvalidInput(
                f"visitor_count ({data.visitor_count}) must equal adult_count "
                f"({data.adult_count}) + child_count ({data.child_count})"
            )

        now = clock.utcnow()

        lock = None
        if data.lock_id:
            lock = lock_manager.validate_lock(
                tenant_id, data.lock_id, slot.id, data.session_id, data.visitor_count, now=now
            )

        # the caller's own hold is what it is spending; every other live hold counts
        held_elsewhere = lock_manager.active_locked_quantity(
            slot.id, now, exclude_lock_id=lock.id if lock else None
        )
        _refuse_over_capacity(slot, data.visitor_count, held_elsewhere)

        booking = Booking(
            tenant_id=tenant_id,
            service_id=slot.service_id,
            slot_id=slot.id,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            adult_count=data.adult_count,
            child_count=data.child_count,
            visitor_count=data.visitor_count,
            total_price=data.total_price,
            status=INITIAL_STATUS,
            payment_status="unpaid",
            language=data.language,
            notes=data.notes,
            created_at=now,
            created_by=data.created_by or data.session_id,
            status_changed_at=now,
        )
        db.session.add(booking)
        slot_store.apply_reserve(slot, data.visitor_count)

        # a hold is consumed whole
        if lock is not None:
            db.session.delete(lock)

        db.session.flush()
        log_event(
            "BOOKING_CREATE", tenant_id=tenant_id, actor=booking.created_by, entity="booking",
            entity_id=booking.id,
            metadata={"slot_id": slot.id, "visitor_count": booking.visitor_count, "lock_id": data.lock_id},
            commit=False,
        )
        # snapshot before commit expires the row
        event = BookingCreated.from_booking(booking)

    # committed; delivery is best-effort from here on
    notify_booking_created(event)
    return booking


def _get_booking(tenant_id: int, booking_id: int, for_update: bool = False) -> Booking:
    q = select(Booking).where(Booking.id == booking_id)
    if for_update:
        q = q.with_for_update().execution_options(populate_existing=True)
    booking = db.session.execute(q).scalar_one_or_none()
    if booking is None or booking.tenant_id != tenant_id:
        raise NotFound("Booking not found")
    return booking


def _lock_booking(tenant_id: int, booking_id: int, *other_slot_ids):
    """
    Locks the booking's slot, plus any other slots, in id order, then re-reads
    the booking under those locks. Returns (booking, {slot_id: slot}).

    Slot first and booking second means two writers of the same booking see
    each other's result instead of both acting on a stale status.
    """
    slot_id = _get_booking(tenant_id, booking_id).slot_id

    slots = {}
    for sid in sorted({slot_id, *other_slot_ids}):
        slots[sid] = slot_store.lock_slot(tenant_id, sid)

    booking = _get_booking(tenant_id, booking_id, for_update=True)
    if booking.slot_id != slot_id:
        # moved between the two reads; the retry locks the right slot
        raise TransactionConflict("Booking changed while it was being updated", booking_id=booking_id)
    return booking, slots


def get_booking(tenant_id: int, booking_id: int) -> Booking:
    with consistent_read(release=False):
        return _get_booking(tenant_id, booking_id)


def cancel_booking(tenant_id: int, booking_id: int, reason: str = None, actor: str = None) -> Booking:
    with atomic():
        booking, slots = _lock_booking(tenant_id, booking_id)
        slot = slots[booking.slot_id]

        if booking.status not in CANCELABLE_STATUSES:
            raise InvalidTransition(f"Booking not cancellable from status {booking.status}")

        slot_store.apply_release(slot, booking.visitor_count)

        now = clock.utcnow()
        previous = booking.status
        booking.status = "canceled"
        booking.status_changed_at = now
        booking.canceled_at = now
        booking.cancel_reason = reason

        log_event(
            "BOOKING_CANCEL", tenant_id=tenant_id, actor=actor, entity="booking", entity_id=booking.id,
            metadata={"reason": reason, "previous_status": previous, "released": booking.visitor_count},
            commit=False,
        )
    return booking


def reschedule_booking(tenant_id: int, booking_id: int, new_slot_id: int, actor: str = None) -> Booking:
    """
    Moves a booking's visitors to another slot of the same service. Both slot
    rows are locked, so the release on the old slot and the reserve on the new
    one commit together or not at all.
    """
    with atomic():
        slot_store.get_active_tenant(tenant_id)
        booking, slots = _lock_booking(tenant_id, booking_id, new_slot_id)

        if booking.status not in EDITABLE_STATUSES:
            raise InvalidTransition(f"Booking cannot be rescheduled from status {booking.status}")
        if new_slot_id == booking.slot_id:
            return booking

        old_slot = slots[booking.slot_id]
        new_slot = slots[new_slot_id]
        if new_slot.service_id != booking.service_id:
            raise InvalidInput("New slot belongs to a different service", slot_id=new_slot_id)
        slot_store.ensure_bookable(new_slot)

        now = clock.utcnow()
        if new_slot.starts_at() <= now:
            raise InvalidInput("Cannot reschedule to a slot that has already started", slot_id=new_slot_id)

        held = lock_manager.active_locked_quantity(new_slot.id, now)
        _refuse_over_capacity(new_slot, booking.visitor_count, held)

        slot_store.apply_release(old_slot, booking.visitor_count)
        slot_store.apply_reserve(new_slot, booking.visitor_count)
        booking.slot_id = new_slot.id

        log_event(
            "BOOKING_RESCHEDULE", tenant_id=tenant_id, actor=actor, entity="booking", entity_id=booking.id,
            metadata={"from_slot": old_slot.id, "to_slot": new_slot.id, "visitor_count": booking.visitor_count},
            commit=False,
        )
    return booking


def change_visitor_counts(
    tenant_id: int,
    booking_id: int,
    adult_count: int,
    child_count: int,
    total_price: int = None,
    actor: str = None,
) -> Booking:
    """Edits the party size; only the difference is reserved or released."""
    visitor_count = adult_count + child_count
    if adult_count < 0 or child_count < 0 or visitor_count <= 0:
        raise InvalidInput("A booking needs at least one visitor and no negative counts")

    with atomic():
        booking, slots = _lock_booking(tenant_id, booking_id)
        slot = slots[booking.slot_id]

        if booking.status not in EDITABLE_STATUSES:
            raise InvalidTransition(f"Booking cannot be edited from status {booking.status}")

        previous = booking.visitor_count
        delta = visitor_count - previous
        if delta > 0:
            held = lock_manager.active_locked_quantity(slot.id, clock.utcnow())
            _refuse_over_capacity(slot, delta, held)
            slot_store.apply_reserve(slot, delta)
        elif delta < 0:
            slot_store.apply_release(slot, -delta)

        booking.adult_count = adult_count
        booking.child_count = child_count
        booking.visitor_count = visitor_count
        if total_price is not None:
            booking.total_price = total_price

        log_event(
            "BOOKING_VISITORS_CHANGE", tenant_id=tenant_id, actor=actor, entity="booking", entity_id=booking.id,
            metadata={"from": previous, "to": visitor_count},
            commit=False,
        )
    return booking


def change_booking_status(tenant_id: int, booking_id: int, new_status: str, actor: str = None) -> Booking:
    with atomic():
        booking = _get_booking(tenant_id, booking_id, for_update=True)
        allowed = STATUS_TRANSITIONS.get(booking.status, ())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Invalid status transition: {booking.status} -> {new_status}",
                allowed=list(allowed),
            )

        previous = booking.status
        booking.status = new_status
        booking.status_changed_at = clock.utcnow()

        log_event(
            "BOOKING_STATUS_CHANGE", tenant_id=tenant_id, actor=actor, entity="booking", entity_id=booking.id,
            metadata={"from": previous, "to": new_status},
            commit=False,
        )
    return booking
