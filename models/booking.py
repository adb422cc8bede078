from models.db import db
from utils.clock import utcnow

BOOKING_STATUSES = ("pending", "confirmed", "canceled", "completed")

# statuses whose visitors are counted in the slot's booked_count
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed", "completed")

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(120), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)

    adult_count = db.Column(db.Integer, nullable=False)
    child_count = db.Column(db.Integer, nullable=False, default=0)
    visitor_count = db.Column(db.Integer, nullable=False)

    total_price = db.Column(db.Integer, nullable=False, default=0)  # store smallest unit

    status = db.Column(db.String(20), nullable=False, default="pending")
    payment_status = db.Column(db.String(20), nullable=False, default="unpaid")

    language = db.Column(db.String(5), nullable=False, default="en")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    created_by = db.Column(db.String(128), nullable=True)
    status_changed_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    canceled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    __table_args__ = (
        db.CheckConstraint("visitor_count = adult_count + child_count", name="ck_bookings_visitor_sum"),
        db.CheckConstraint("visitor_count > 0", name="ck_bookings_visitors_positive"),
        db.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in BOOKING_STATUSES) + ")",
            name="ck_bookings_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "service_id": self.service_id,
            "slot_id": self.slot_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "adult_count": self.adult_count,
            "child_count": self.child_count,
            "visitor_count": self.visitor_count,
            "total_price": self.total_price,
            "status": self.status,
            "payment_status": self.payment_status,
            "language": self.language,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "created_by": self.created_by,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "cancel_reason": self.cancel_reason,
        }
