from datetime import date, time, timedelta

import pytest

from app import create_app
from models import db
from models.booking_lock import BookingLock
from models.service import Service
from models.slot import Slot
from models.tenant import Tenant
from schemas.bookings import BookingCreate
from utils import clock

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "test.db"),
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        "NOTIFY_ASYNC": False,
        "ADMIN_API_KEY": ADMIN_KEY,
        "TX_RETRY_BACKOFF_SECONDS": 0.01,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def tenant(app):
    t = Tenant(name="Acme Parks")
    db.session.add(t)
    db.session.commit()
    return t


@pytest.fixture
def service(tenant):
    s = Service(tenant_id=tenant.id, name="Water park entry", default_capacity=10)
    db.session.add(s)
    db.session.commit()
    return s


@pytest.fixture
def make_slot(tenant, service):
    counter = {"n": 0}

    def _make(capacity=5, booked=0, slot_date=None, start=None, end=None, is_available=True):
        counter["n"] += 1
        slot_date = slot_date or (date.today() + timedelta(days=1))
        start = start or time(8 + counter["n"] % 10, 0)
        end = end or time(start.hour, 45)
        slot = Slot(
            tenant_id=tenant.id,
            service_id=service.id,
            slot_date=slot_date,
            start_time=start,
            end_time=end,
            original_capacity=capacity,
            booked_count=booked,
            available_capacity=capacity - booked,
            is_available=is_available,
        )
        db.session.add(slot)
        db.session.commit()
        return slot

    return _make


@pytest.fixture
def make_lock():
    def _make(slot, session_id="session-a", qty=1, expires_in=120):
        now = clock.utcnow()
        lock = BookingLock(
            slot_id=slot.id,
            session_id=session_id,
            reserved_capacity=qty,
            lock_acquired_at=now,
            lock_expires_at=now + timedelta(seconds=expires_in),
        )
        db.session.add(lock)
        db.session.commit()
        return lock

    return _make


@pytest.fixture
def booking_request(service):
    def _make(slot, visitors=2, adults=None, children=0, **extra):
        payload = {
            "service_id": service.id,
            "slot_id": slot.id,
            "customer_name": "Layla Hassan",
            "customer_phone": "+201032560826",
            "customer_email": "layla@example.com",
            "adult_count": visitors - children if adults is None else adults,
            "child_count": children,
            "visitor_count": visitors,
            "total_price": 15000,
        }
        payload.update(extra)
        return BookingCreate(**payload)

    return _make
