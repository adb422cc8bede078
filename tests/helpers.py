from sqlalchemy import func, select

from models import db
from models.booking import ACTIVE_BOOKING_STATUSES, Booking
from models.booking_lock import BookingLock
from models.slot import Slot


def fresh_slot(slot_id):
    db.session.expire_all()
    return db.session.get(Slot, slot_id)


def lock_ids(slot_id):
    return set(db.session.execute(
        select(BookingLock.id).where(BookingLock.slot_id == slot_id)
    ).scalars().all())


def active_visitors(slot_id):
    return db.session.execute(
        select(func.coalesce(func.sum(Booking.visitor_count), 0)).where(
            Booking.slot_id == slot_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
    ).scalar_one()


def snapshot(slot_id):
    slot = fresh_slot(slot_id)
    return {
        "booked_count": slot.booked_count,
        "available_capacity": slot.available_capacity,
        "locks": lock_ids(slot_id),
        "bookings": db.session.query(Booking).filter_by(slot_id=slot_id).count(),
    }
