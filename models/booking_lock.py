import uuid
from datetime import datetime
from models.db import db
from utils.clock import utcnow

def _new_lock_id() -> str:
    return str(uuid.uuid4())

class BookingLock(db.Model):
    __tablename__ = "booking_locks"

    # opaque id handed to the checkout client
    id = db.Column(db.String(36), primary_key=True, default=_new_lock_id)

    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False)
    session_id = db.Column(db.String(128), nullable=False, index=True)

    reserved_capacity = db.Column(db.Integer, nullable=False)

    lock_acquired_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    lock_expires_at = db.Column(db.DateTime, nullable=False)

    __table_args__ = (
        db.CheckConstraint("reserved_capacity > 0", name="ck_booking_locks_positive"),
        # active-hold aggregation filters on both columns
        db.Index("ix_booking_locks_slot_expires", "slot_id", "lock_expires_at"),
    )

    def is_active(self, now: datetime) -> bool:
        return self.lock_expires_at > now
