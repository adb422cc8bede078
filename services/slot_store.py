"""
Slot store: the single source of truth for slot capacity.

Capacity is only ever changed on a slot row that the current transaction has
locked with ``lock_slot``. ``apply_reserve`` / ``apply_release`` are the
in-transaction deltas used by the booking transaction and cancellation;
``reserve`` / ``release`` wrap them in their own transaction for callers that
only need a capacity change.
"""
import logging

from sqlalchemy import select

from models import db
from models.slot import Slot
from models.service import Service
from models.tenant import Tenant
from services.errors import (
    CapacityExceeded,
    InvalidInput,
    InvalidRelease,
    NotFound,
    SlotUnavailable,
    TenantInactive,
)
from services.transactions import atomic

logger = logging.getLogger(__name__)


def get_active_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    if not tenant.is_active:
        raise TenantInactive("Tenant account is deactivated")
    return tenant


def lock_slot(tenant_id: int, slot_id: int, service_id: int = None) -> Slot:
    """
    Reads the slot with exclusive intent (SELECT ... FOR UPDATE). Concurrent
    transactions on the same slot queue here; other slots are unaffected.
    """
    slot = db.session.execute(
        select(Slot)
        .where(Slot.id == slot_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()

    # a slot of another tenant is reported exactly like a missing one
    if slot is None or slot.tenant_id != tenant_id:
        raise NotFound("Slot not found")
    if service_id is not None and slot.service_id != service_id:
        raise NotFound("Slot does not belong to this service")
    return slot


def ensure_bookable(slot: Slot):
    if not slot.is_available:
        raise SlotUnavailable("Slot is not available", slot_id=slot.id)
    service = db.session.get(Service, slot.service_id)
    if service is None or not service.is_active:
        raise SlotUnavailable("Service is not active", slot_id=slot.id)


def apply_reserve(slot: Slot, qty: int):
    if qty <= 0:
        raise InvalidInput("Reserved quantity must be positive", requested=qty)
    if slot.booked_count + qty > slot.original_capacity:
        raise CapacityExceeded(
            "Not enough capacity on this slot",
            available=slot.original_capacity - slot.booked_count,
            requested=qty,
        )
    slot.booked_count += qty
    slot.available_capacity = slot.original_capacity - slot.booked_count


def apply_release(slot: Slot, qty: int):
    if qty <= 0 or slot.booked_count - qty < 0:
        logger.critical(
            "capacity release underflow on slot %s: booked_count=%s release=%s",
            slot.id, slot.booked_count, qty,
        )
        raise InvalidRelease(
            "Capacity release would drive booked_count below zero",
            slot_id=slot.id,
            booked_count=slot.booked_count,
            requested=qty,
        )
    slot.booked_count -= qty
    slot.available_capacity = slot.original_capacity - slot.booked_count


def apply_resize(slot: Slot, new_capacity: int):
    slot.original_capacity = new_capacity
    slot.available_capacity = new_capacity - slot.booked_count


def reserve(tenant_id: int, slot_id: int, qty: int, service_id: int = None) -> Slot:
    with atomic():
        slot = lock_slot(tenant_id, slot_id, service_id)
        ensure_bookable(slot)
        apply_reserve(slot, qty)
    return slot


def release(tenant_id: int, slot_id: int, qty: int, service_id: int = None) -> Slot:
    with atomic():
        slot = lock_slot(tenant_id, slot_id, service_id)
        apply_release(slot, qty)
    return slot


def resize(tenant_id: int, slot_id: int, new_capacity: int) -> Slot:
    with atomic():
        slot = lock_slot(tenant_id, slot_id)
        if new_capacity < slot.booked_count:
            raise InvalidInput(
                "Capacity cannot drop below the seats already booked",
                booked_count=slot.booked_count,
                requested=new_capacity,
            )
        apply_resize(slot, new_capacity)
    return slot


def set_availability(tenant_id: int, slot_id: int, is_available: bool) -> Slot:
    # soft disable; slots referenced by bookings are never deleted
    with atomic():
        slot = lock_slot(tenant_id, slot_id)
        slot.is_available = is_available
    return slot
