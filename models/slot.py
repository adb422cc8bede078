from datetime import datetime
from models.db import db
from utils.clock import utcnow

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    # date and times are UTC wall-clock values; callers convert from the
    # tenant's local time before storing
    slot_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    # capacity counters; only the slot store mutates these
    original_capacity = db.Column(db.Integer, nullable=False)
    booked_count = db.Column(db.Integer, nullable=False, default=0)
    available_capacity = db.Column(db.Integer, nullable=False)

    is_available = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Prevent duplicate slot times for same service
        db.UniqueConstraint("service_id", "slot_date", "start_time", "end_time", name="uq_service_timeslot"),
        db.CheckConstraint("booked_count >= 0", name="ck_slots_booked_non_negative"),
        db.CheckConstraint("booked_count <= original_capacity", name="ck_slots_not_oversold"),
        db.CheckConstraint(
            "available_capacity = original_capacity - booked_count",
            name="ck_slots_available_matches",
        ),
    )

    def starts_at(self) -> datetime:
        # naive UTC, comparable with utils.clock.utcnow()
        return datetime.combine(self.slot_date, self.start_time)
