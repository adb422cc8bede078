from datetime import timedelta

import pytest

from models import db
from models.booking_lock import BookingLock
from models.tenant import Tenant
from services import lock_manager
from services.errors import (
    CapacityExceeded,
    InvalidInput,
    LockExpired,
    LockInsufficientCapacity,
    LockMismatch,
    NotFound,
    SlotUnavailable,
    TenantInactive,
)
from utils import clock
from tests.helpers import fresh_slot, lock_ids


def test_acquire_grants_hold_without_touching_counters(tenant, make_slot):
    slot = make_slot(capacity=5)

    lock = lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 2)

    assert lock.reserved_capacity == 2
    assert lock.lock_expires_at - lock.lock_acquired_at == timedelta(seconds=120)
    assert lock_ids(slot.id) == {lock.id}
    assert fresh_slot(slot.id).booked_count == 0


def test_acquire_refused_creates_no_row(tenant, make_slot, make_lock):
    slot = make_slot(capacity=3, booked=1)
    make_lock(slot, session_id="session-a", qty=1)

    with pytest.raises(CapacityExceeded) as exc:
        lock_manager.acquire_lock(tenant.id, slot.id, "session-b", 2)

    assert exc.value.details["available"] == 1
    assert len(lock_ids(slot.id)) == 1


def test_expired_hold_does_not_block(tenant, make_slot, make_lock):
    slot = make_slot(capacity=2)
    make_lock(slot, session_id="session-a", qty=2, expires_in=-5)

    lock = lock_manager.acquire_lock(tenant.id, slot.id, "session-b", 2)

    assert lock.session_id == "session-b"


def test_acquire_rejects_bad_input(tenant, make_slot):
    slot = make_slot()

    with pytest.raises(InvalidInput):
        lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 0)
    with pytest.raises(InvalidInput):
        lock_manager.acquire_lock(tenant.id, slot.id, "", 1)
    with pytest.raises(InvalidInput):
        lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 1, ttl_seconds=10_000)


def test_acquire_custom_ttl(tenant, make_slot):
    slot = make_slot()

    lock = lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 1, ttl_seconds=30)

    assert lock.lock_expires_at - lock.lock_acquired_at == timedelta(seconds=30)


def test_acquire_on_disabled_slot(tenant, make_slot):
    slot = make_slot(is_available=False)

    with pytest.raises(SlotUnavailable):
        lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 1)


def test_acquire_for_inactive_tenant(tenant, make_slot):
    slot = make_slot()
    tenant.is_active = False
    db.session.commit()

    with pytest.raises(TenantInactive):
        lock_manager.acquire_lock(tenant.id, slot.id, "session-a", 1)


def test_release_is_idempotent(tenant, make_slot, make_lock):
    slot = make_slot()
    lock = make_lock(slot)
    lock_id = lock.id

    assert lock_manager.release_lock(tenant.id, lock_id, "session-a") is True
    assert lock_manager.release_lock(tenant.id, lock_id, "session-a") is False
    assert lock_ids(slot.id) == set()


def test_release_by_other_session(tenant, make_slot, make_lock):
    slot = make_slot()
    lock = make_lock(slot, session_id="session-a")
    lock_id = lock.id

    with pytest.raises(LockMismatch):
        lock_manager.release_lock(tenant.id, lock_id, "session-b")

    assert lock_ids(slot.id) == {lock_id}


def test_release_is_scoped_to_tenant(make_slot, make_lock):
    slot = make_slot()
    lock = make_lock(slot)
    lock_id = lock.id
    other = Tenant(name="Other")
    db.session.add(other)
    db.session.commit()

    assert lock_manager.release_lock(other.id, lock_id) is False
    assert lock_ids(slot.id) == {lock_id}


def test_validate_lock_errors(tenant, make_slot, make_lock):
    slot = make_slot(capacity=5)
    other_slot = make_slot(capacity=5)
    lock = make_lock(slot, session_id="session-a", qty=2)
    expired = make_lock(slot, session_id="session-a", qty=2, expires_in=-1)

    with pytest.raises(NotFound):
        lock_manager.validate_lock(tenant.id, "missing", slot.id, "session-a", 2)
    with pytest.raises(LockExpired):
        lock_manager.validate_lock(tenant.id, expired.id, slot.id, "session-a", 2)
    with pytest.raises(LockMismatch):
        lock_manager.validate_lock(tenant.id, lock.id, slot.id, "session-b", 2)
    with pytest.raises(LockMismatch):
        lock_manager.validate_lock(tenant.id, lock.id, other_slot.id, "session-a", 2)
    with pytest.raises(LockInsufficientCapacity):
        lock_manager.validate_lock(tenant.id, lock.id, slot.id, "session-a", 3)

    assert lock_manager.validate_lock(tenant.id, lock.id, slot.id, "session-a", 1).id == lock.id


def test_lock_expiry_boundary_is_exclusive(tenant, make_slot, make_lock):
    slot = make_slot()
    lock = make_lock(slot, expires_in=60)

    with pytest.raises(LockExpired):
        lock_manager.validate_lock(tenant.id, lock.id, slot.id, "session-a", 1, now=lock.lock_expires_at)


def test_lock_status(tenant, make_slot, make_lock):
    slot = make_slot()
    lock = make_lock(slot, qty=1, expires_in=90)

    status = lock_manager.lock_status(tenant.id, lock.id, "session-a")

    assert status["valid"] is True
    assert status["slot_id"] == slot.id
    assert 0 < status["seconds_remaining"] <= 90

    with pytest.raises(LockMismatch):
        lock_manager.lock_status(tenant.id, lock.id, "session-b")


def test_active_locks_for_slots(tenant, make_slot, make_lock):
    a = make_slot()
    b = make_slot()
    c = make_slot()
    make_lock(a, qty=1)
    make_lock(a, session_id="session-b", qty=2)
    make_lock(b, qty=1, expires_in=-10)

    totals = lock_manager.active_locks_for_slots(tenant.id, [a.id, b.id, c.id])

    assert totals == {a.id: 3}


def test_cleanup_expired_locks(make_slot, make_lock):
    slot = make_slot(capacity=10)
    live = make_lock(slot, expires_in=60)
    make_lock(slot, expires_in=-60)
    make_lock(slot, expires_in=-1)
    live_id = live.id

    assert lock_manager.cleanup_expired_locks() == 2
    assert lock_ids(slot.id) == {live_id}
    assert lock_manager.cleanup_expired_locks(now=clock.utcnow() + timedelta(hours=1)) == 1
    assert db.session.query(BookingLock).count() == 0
