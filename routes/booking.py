from flask import Blueprint, request, jsonify

from schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingReschedule,
    BookingStatusChange,
    BookingVisitorsChange,
)
from schemas.locks import ActiveLocksQuery, LockCreate, LockRelease
from schemas.slots import AvailabilityQuery
from services import booking_transaction, lock_manager
from services.availability import query_availability
from services.errors import InvalidInput
from services.transactions import run_with_retry

booking_bp = Blueprint("booking", __name__, url_prefix="/tenants/<int:tenant_id>")


def _body(model):
    # unknown or missing fields are rejected before any transaction starts
    return model.model_validate(request.get_json(silent=True) or {})


# ---------- CUSTOMERS/RECEPTION: what can be booked ----------
@booking_bp.get("/services/<int:service_id>/availability")
def availability(tenant_id: int, service_id: int):
    query = AvailabilityQuery.model_validate({
        "start": request.args.get("start"),
        "end": request.args.get("end") or request.args.get("start"),
    })
    rows = query_availability(tenant_id, service_id, query.start, query.end)
    return jsonify([r.to_dict() for r in rows]), 200


# ---------- CHECKOUT: temporary holds ----------
@booking_bp.post("/locks")
def acquire_lock(tenant_id: int):
    data = _body(LockCreate)
    lock = run_with_retry(
        lock_manager.acquire_lock,
        tenant_id, data.slot_id, data.session_id, data.quantity, data.ttl_seconds,
    )
    return jsonify(
        lock_id=lock.id,
        slot_id=lock.slot_id,
        session_id=lock.session_id,
        reserved_capacity=lock.reserved_capacity,
        expires_at=lock.lock_expires_at.isoformat(),
        expires_in_seconds=int((lock.lock_expires_at - lock.lock_acquired_at).total_seconds()),
    ), 201


@booking_bp.get("/locks/<lock_id>")
def lock_status(tenant_id: int, lock_id: str):
    session_id = request.args.get("session_id")
    if not session_id:
        raise InvalidInput("session_id required")
    return jsonify(lock_manager.lock_status(tenant_id, lock_id, session_id)), 200


@booking_bp.post("/locks/<lock_id>/release")
def release_lock(tenant_id: int, lock_id: str):
    data = _body(LockRelease)
    released = run_with_retry(lock_manager.release_lock, tenant_id, lock_id, data.session_id)
    return jsonify(released=released), 200


@booking_bp.post("/locks/active")
def active_locks(tenant_id: int):
    data = _body(ActiveLocksQuery)
    totals = lock_manager.active_locks_for_slots(tenant_id, data.slot_ids)
    return jsonify([
        {"slot_id": slot_id, "locked_capacity": qty}
        for slot_id, qty in sorted(totals.items())
    ]), 200


# ---------- BOOKINGS ----------
@booking_bp.post("/bookings")
def create_booking(tenant_id: int):
    data = _body(BookingCreate)
    booking = run_with_retry(booking_transaction.create_booking, tenant_id, data)
    return jsonify(booking.to_dict()), 201


@booking_bp.get("/bookings/<int:booking_id>")
def get_booking(tenant_id: int, booking_id: int):
    booking = booking_transaction.get_booking(tenant_id, booking_id)
    return jsonify(booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/cancel")
def cancel_booking(tenant_id: int, booking_id: int):
    data = _body(BookingCancel)
    booking = run_with_retry(
        booking_transaction.cancel_booking, tenant_id, booking_id, data.reason, data.actor,
    )
    return jsonify(id=booking.id, status=booking.status), 200


@booking_bp.post("/bookings/<int:booking_id>/status")
def change_status(tenant_id: int, booking_id: int):
    data = _body(BookingStatusChange)
    booking = run_with_retry(
        booking_transaction.change_booking_status, tenant_id, booking_id, data.status, data.actor,
    )
    return jsonify(id=booking.id, status=booking.status), 200


@booking_bp.post("/bookings/<int:booking_id>/reschedule")
def reschedule(tenant_id: int, booking_id: int):
    data = _body(BookingReschedule)
    booking = run_with_retry(
        booking_transaction.reschedule_booking, tenant_id, booking_id, data.slot_id, data.actor,
    )
    return jsonify(booking.to_dict()), 200


@booking_bp.post("/bookings/<int:booking_id>/visitors")
def change_visitors(tenant_id: int, booking_id: int):
    data = _body(BookingVisitorsChange)
    booking = run_with_retry(
        booking_transaction.change_visitor_counts,
        tenant_id, booking_id, data.adult_count, data.child_count, data.total_price, data.actor,
    )
    return jsonify(booking.to_dict()), 200
