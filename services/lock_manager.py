"""
Temporary capacity holds taken while a customer is in checkout.

A hold never touches booked_count. It only counts against a slot while
``lock_expires_at > now``; expiry needs no action, and ``cleanup_expired_locks``
exists purely to keep the table small.
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import delete, func, select

from models import db
from models.booking_lock import BookingLock
from models.slot import Slot
from services import slot_store
from services.errors import (
    CapacityExceeded,
    InvalidInput,
    LockExpired,
    LockInsufficientCapacity,
    LockMismatch,
    NotFound,
)
from services.transactions import atomic, consistent_read
from utils import clock
from utils.audit import log_event

logger = logging.getLogger(__name__)


def active_locked_quantity(slot_id: int, now, exclude_lock_id: str = None) -> int:
    q = select(func.coalesce(func.sum(BookingLock.reserved_capacity), 0)).where(
        BookingLock.slot_id == slot_id,
        BookingLock.lock_expires_at > now,
    )
    if exclude_lock_id is not None:
        q = q.where(BookingLock.id != exclude_lock_id)
    return int(db.session.execute(q).scalar_one())


def active_locked_by_slot(slot_ids, now) -> dict:
    if not slot_ids:
        return {}
    rows = db.session.execute(
        select(BookingLock.slot_id, func.sum(BookingLock.reserved_capacity))
        .where(BookingLock.slot_id.in_(slot_ids), BookingLock.lock_expires_at > now)
        .group_by(BookingLock.slot_id)
    ).all()
    return {slot_id: int(total) for slot_id, total in rows}


def _resolve_ttl(ttl_seconds) -> int:
    default_ttl = int(current_app.config.get("LOCK_TTL_SECONDS", 120))
    max_ttl = int(current_app.config.get("LOCK_MAX_TTL_SECONDS", 900))
    if ttl_seconds is None:
        return default_ttl
    if ttl_seconds <= 0 or ttl_seconds > max_ttl:
        raise InvalidInput(f"ttl_seconds must be between 1 and {max_ttl}")
    return int(ttl_seconds)


def acquire_lock(tenant_id: int, slot_id: int, session_id: str, qty: int, ttl_seconds: int = None) -> BookingLock:
    if qty <= 0:
        raise InvalidInput("quantity must be at least 1")
    if not session_id:
        raise InvalidInput("session_id is required")
    ttl = _resolve_ttl(ttl_seconds)

    with atomic():
        slot_store.get_active_tenant(tenant_id)
        slot = slot_store.lock_slot(tenant_id, slot_id)
        slot_store.ensure_bookable(slot)

        now = clock.utcnow()
        held = active_locked_quantity(slot.id, now)
        if slot.booked_count + held + qty > slot.original_capacity:
            logger.info(
                "lock refused on slot %s: booked=%s held=%s requested=%s capacity=%s",
                slot.id, slot.booked_count, held, qty, slot.original_capacity,
            )
            raise CapacityExceeded(
                "Not enough capacity on this slot",
                available=max(slot.original_capacity - slot.booked_count - held, 0),
                requested=qty,
            )

        lock = BookingLock(
            slot_id=slot.id,
            session_id=session_id,
            reserved_capacity=qty,
            lock_acquired_at=now,
            lock_expires_at=now + timedelta(seconds=ttl),
        )
        db.session.add(lock)
        db.session.flush()
        log_event(
            "LOCK_ACQUIRE", tenant_id=tenant_id, actor=session_id, entity="booking_lock",
            entity_id=lock.id, metadata={"slot_id": slot.id, "quantity": qty, "ttl": ttl}, commit=False,
        )

    return lock


def _get_lock(tenant_id: int, lock_id: str):
    row = db.session.execute(
        select(BookingLock)
        .join(Slot, Slot.id == BookingLock.slot_id)
        .where(BookingLock.id == lock_id, Slot.tenant_id == tenant_id)
    ).scalar_one_or_none()
    return row


def check_lock(lock: BookingLock, session_id: str, now):
    if not lock.is_active(now):
        raise LockExpired("Lock has expired", lock_id=lock.id)
    if lock.session_id != session_id:
        raise LockMismatch("Lock does not belong to this session", lock_id=lock.id)


def validate_lock(tenant_id: int, lock_id: str, slot_id: int, session_id: str, qty: int, now=None) -> BookingLock:
    """
    Commit-time check used by the booking transaction. Runs inside the
    caller's transaction, after the slot row has been locked.
    """
    now = now or clock.utcnow()
    lock = _get_lock(tenant_id, lock_id)
    if lock is None:
        raise NotFound("Lock not found", lock_id=lock_id)
    check_lock(lock, session_id, now)
    if lock.slot_id != slot_id:
        raise LockMismatch("Lock does not match the specified slot", lock_id=lock.id)
    if lock.reserved_capacity < qty:
        raise LockInsufficientCapacity(
            "Lock reserves less capacity than requested",
            reserved=lock.reserved_capacity,
            requested=qty,
        )
    return lock


def lock_status(tenant_id: int, lock_id: str, session_id: str) -> dict:
    now = clock.utcnow()
    with consistent_read():
        lock = _get_lock(tenant_id, lock_id)
        if lock is None:
            raise NotFound("Lock not found", lock_id=lock_id)
        check_lock(lock, session_id, now)
        remaining = int((lock.lock_expires_at - now).total_seconds())
        return {
            "valid": True,
            "lock_id": lock.id,
            "slot_id": lock.slot_id,
            "reserved_capacity": lock.reserved_capacity,
            "expires_at": lock.lock_expires_at.isoformat(),
            "seconds_remaining": max(remaining, 0),
        }


def release_lock(tenant_id: int, lock_id: str, session_id: str = None) -> bool:
    """Idempotent. Returns whether a row was deleted."""
    with atomic():
        lock = _get_lock(tenant_id, lock_id)
        if lock is None:
            return False
        if session_id is not None and lock.session_id != session_id:
            raise LockMismatch("Lock does not belong to this session", lock_id=lock_id)
        # same serialization point as acquire and booking
        slot_store.lock_slot(tenant_id, lock.slot_id)
        lock = _get_lock(tenant_id, lock_id)
        if lock is None:
            return False
        db.session.delete(lock)
        log_event(
            "LOCK_RELEASE", tenant_id=tenant_id, actor=session_id, entity="booking_lock",
            entity_id=lock_id, metadata={"slot_id": lock.slot_id}, commit=False,
        )
    return True


def active_locks_for_slots(tenant_id: int, slot_ids) -> dict:
    with consistent_read():
        # only report slots the tenant owns
        owned = db.session.execute(
            select(Slot.id).where(Slot.id.in_(slot_ids), Slot.tenant_id == tenant_id)
        ).scalars().all()
        return active_locked_by_slot(list(owned), clock.utcnow())


def cleanup_expired_locks(now=None) -> int:
    # expired rows are already invisible to every capacity check, so this
    # does not need the slot row locks
    now = now or clock.utcnow()
    with atomic():
        result = db.session.execute(delete(BookingLock).where(BookingLock.lock_expires_at <= now))
        deleted = result.rowcount or 0
        if deleted:
            log_event("LOCKS_CLEANUP", entity="booking_lock", metadata={"deleted": deleted}, commit=False)
    logger.info("removed %d expired booking locks", deleted)
    return deleted
