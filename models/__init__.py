from .db import db
from .audit_log import AuditLog
from .tenant import Tenant
from .service import Service
from .slot import Slot
from .booking_lock import BookingLock
from .booking import Booking
