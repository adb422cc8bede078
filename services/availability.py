from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import select

from models import db
from models.service import Service
from models.slot import Slot
from services.errors import InvalidInput, NotFound
from services.lock_manager import active_locked_by_slot
from services.transactions import consistent_read
from utils import clock


@dataclass(frozen=True)
class SlotAvailability:
    slot_id: int
    slot_date: date
    start_time: time
    end_time: time
    effective_available: int

    def to_dict(self):
        return {
            "slot_id": self.slot_id,
            "date": self.slot_date.isoformat(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "effective_available": self.effective_available,
        }


def query_availability(tenant_id: int, service_id: int, start: date, end: date):
    """
    Plain read, no row locks. The hold filter (lock_expires_at > now) is the
    same one acquire_lock and create_booking apply, so a slot listed here only
    fails later if someone else takes it first.
    """
    if end < start:
        raise InvalidInput("end must not be before start")

    with consistent_read():
        return _bookable_slots(tenant_id, service_id, start, end)


def _bookable_slots(tenant_id, service_id, start, end):
    service = db.session.get(Service, service_id)
    if service is None or service.tenant_id != tenant_id:
        raise NotFound("Service not found")
    if not service.is_active:
        return []

    slots = db.session.execute(
        select(Slot)
        .where(
            Slot.tenant_id == tenant_id,
            Slot.service_id == service_id,
            Slot.slot_date >= start,
            Slot.slot_date <= end,
            Slot.is_available.is_(True),
        )
        .order_by(Slot.slot_date.asc(), Slot.start_time.asc())
    ).scalars().all()

    now = clock.utcnow()
    # slots that already started are not offered; slot times are UTC
    slots = [s for s in slots if s.starts_at() > now]
    held = active_locked_by_slot([s.id for s in slots], now)

    out = []
    for s in slots:
        effective = s.original_capacity - s.booked_count - held.get(s.id, 0)
        if effective <= 0:
            continue
        out.append(SlotAvailability(
            slot_id=s.id,
            slot_date=s.slot_date,
            start_time=s.start_time,
            end_time=s.end_time,
            effective_available=effective,
        ))
    return out
