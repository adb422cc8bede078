from datetime import date, timedelta

from models import db
from models.audit_log import AuditLog
from models.slot import Slot
from services import booking_transaction
from services.errors import TransactionConflict
from tests.helpers import fresh_slot, lock_ids

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


def _booking_body(service, slot, visitors=2, **extra):
    body = {
        "service_id": service.id,
        "slot_id": slot.id,
        "customer_name": "Omar Nabil",
        "customer_phone": "+201001234567",
        "adult_count": visitors,
        "child_count": 0,
        "visitor_count": visitors,
        "total_price": 24000,
    }
    body.update(extra)
    return body


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "database": True}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_availability_endpoint(client, tenant, service, make_slot, make_lock):
    slot = make_slot(capacity=5, booked=1)
    make_lock(slot, qty=2)

    resp = client.get(f"/tenants/{tenant.id}/services/{service.id}/availability?start={TOMORROW}")

    assert resp.status_code == 200
    rows = resp.get_json()
    assert len(rows) == 1
    assert rows[0]["slot_id"] == slot.id
    assert rows[0]["date"] == TOMORROW
    assert rows[0]["effective_available"] == 2


def test_availability_rejects_bad_range(client, tenant, service):
    today = date.today()
    url = f"/tenants/{tenant.id}/services/{service.id}/availability"

    assert client.get(url).status_code == 400
    resp = client.get(f"{url}?start={today.isoformat()}&end={(today - timedelta(days=1)).isoformat()}")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "invalid_input"


def test_checkout_flow(client, tenant, service, make_slot):
    slot = make_slot(capacity=3)
    base = f"/tenants/{tenant.id}"

    resp = client.post(f"{base}/locks", json={"slot_id": slot.id, "session_id": "s-1", "quantity": 2})
    assert resp.status_code == 201
    lock = resp.get_json()
    assert lock["reserved_capacity"] == 2
    assert lock["expires_in_seconds"] == 120

    resp = client.get(f"{base}/locks/{lock['lock_id']}?session_id=s-1")
    assert resp.status_code == 200
    assert resp.get_json()["valid"] is True

    resp = client.post(f"{base}/locks/active", json={"slot_ids": [slot.id]})
    assert resp.get_json() == [{"slot_id": slot.id, "locked_capacity": 2}]

    resp = client.post(f"{base}/bookings", json=_booking_body(service, slot, visitors=2, session_id="s-2"))
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "capacity_exceeded"

    resp = client.post(
        f"{base}/bookings",
        json=_booking_body(service, slot, visitors=2, lock_id=lock["lock_id"], session_id="s-1"),
    )
    assert resp.status_code == 201
    booking = resp.get_json()
    assert booking["status"] == "pending"
    assert booking["visitor_count"] == 2
    assert lock_ids(slot.id) == set()

    resp = client.get(f"{base}/bookings/{booking['id']}")
    assert resp.status_code == 200
    assert resp.get_json()["customer_name"] == "Omar Nabil"


def test_lock_release_endpoint(client, tenant, make_slot, make_lock):
    slot = make_slot()
    lock_id = make_lock(slot, session_id="s-1").id
    url = f"/tenants/{tenant.id}/locks/{lock_id}/release"

    resp = client.post(url, json={"session_id": "s-2"})
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "lock_mismatch"

    assert client.post(url, json={"session_id": "s-1"}).get_json() == {"released": True}
    assert client.post(url, json={}).get_json() == {"released": False}


def test_lock_status_requires_session(client, tenant, make_slot, make_lock):
    slot = make_slot()
    lock_id = make_lock(slot, expires_in=-5).id
    url = f"/tenants/{tenant.id}/locks/{lock_id}"

    assert client.get(url).status_code == 400
    resp = client.get(f"{url}?session_id=session-a")
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "lock_expired"


def test_unknown_field_is_rejected(client, tenant, service, make_slot):
    slot = make_slot()

    resp = client.post(
        f"/tenants/{tenant.id}/bookings",
        json=_booking_body(service, slot, discount_code="FREE"),
    )

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "invalid_input"
    assert body["details"][0]["field"] == "discount_code"
    assert fresh_slot(slot.id).booked_count == 0


def test_lock_id_needs_session(client, tenant, service, make_slot):
    slot = make_slot()

    resp = client.post(f"/tenants/{tenant.id}/bookings", json=_booking_body(service, slot, lock_id="abc"))

    assert resp.status_code == 400


def test_cancel_and_status_endpoints(client, tenant, service, make_slot):
    slot = make_slot(capacity=4)
    base = f"/tenants/{tenant.id}/bookings"
    booking_id = client.post(base, json=_booking_body(service, slot, visitors=3)).get_json()["id"]

    resp = client.post(f"{base}/{booking_id}/status", json={"status": "confirmed", "actor": "desk"})
    assert resp.get_json() == {"id": booking_id, "status": "confirmed"}

    resp = client.post(f"{base}/{booking_id}/cancel", json={"reason": "customer request"})
    assert resp.get_json() == {"id": booking_id, "status": "canceled"}
    assert fresh_slot(slot.id).booked_count == 0

    resp = client.post(f"{base}/{booking_id}/cancel", json={})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "invalid_transition"


def test_unknown_booking(client, tenant):
    resp = client.get(f"/tenants/{tenant.id}/bookings/404")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "not_found"


def test_admin_requires_key(client):
    assert client.post("/admin/tenants", json={"name": "Zoo"}).status_code == 403
    assert client.post("/admin/tenants", json={"name": "Zoo"}, headers={"X-Admin-Key": "wrong"}).status_code == 403


def test_admin_closed_without_configured_key(app, client, admin_headers):
    app.config["ADMIN_API_KEY"] = None

    resp = client.post("/admin/tenants", json={"name": "Zoo"}, headers=admin_headers)

    assert resp.status_code == 403


def test_admin_catalogue_setup(client, admin_headers):
    resp = client.post("/admin/tenants", json={"name": "City Zoo"}, headers=admin_headers)
    assert resp.status_code == 201
    tenant_id = resp.get_json()["id"]

    resp = client.post(
        f"/admin/tenants/{tenant_id}/services",
        json={"name": "Day ticket", "default_capacity": 50},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    service_id = resp.get_json()["id"]

    dup = client.post(f"/admin/tenants/{tenant_id}/services", json={"name": "Day ticket"}, headers=admin_headers)
    assert dup.status_code == 409

    slot_body = {"service_id": service_id, "slot_date": TOMORROW, "start_time": "09:00", "end_time": "12:00"}
    resp = client.post(f"/admin/tenants/{tenant_id}/slots", json=slot_body, headers=admin_headers)
    assert resp.status_code == 201
    slot = resp.get_json()
    assert slot["original_capacity"] == 50
    assert slot["available_capacity"] == 50

    dup = client.post(f"/admin/tenants/{tenant_id}/slots", json=slot_body, headers=admin_headers)
    assert dup.status_code == 409

    actions = {r.action for r in db.session.query(AuditLog).filter_by(tenant_id=tenant_id)}
    assert {"TENANT_CREATE", "SERVICE_CREATE", "SLOT_CREATE"} <= actions


def test_admin_slot_for_other_tenant_service(client, admin_headers, tenant, service):
    other_id = client.post("/admin/tenants", json={"name": "Other"}, headers=admin_headers).get_json()["id"]

    resp = client.post(
        f"/admin/tenants/{other_id}/slots",
        json={"service_id": service.id, "slot_date": TOMORROW, "start_time": "09:00", "end_time": "10:00"},
        headers=admin_headers,
    )

    assert resp.status_code == 404


def test_admin_slot_controls(client, admin_headers, tenant, service, make_slot):
    slot = make_slot(capacity=5, booked=3)
    base = f"/admin/tenants/{tenant.id}/slots/{slot.id}"

    resp = client.post(f"{base}/deactivate", headers=admin_headers)
    assert resp.get_json()["is_available"] is False
    resp = client.get(f"/tenants/{tenant.id}/services/{service.id}/availability?start={TOMORROW}")
    assert resp.get_json() == []

    assert client.post(f"{base}/activate", headers=admin_headers).get_json()["is_available"] is True

    resp = client.post(f"{base}/capacity", json={"capacity": 2}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.post(f"{base}/capacity", json={"capacity": 8}, headers=admin_headers)
    assert resp.get_json()["available_capacity"] == 5
    assert db.session.get(Slot, slot.id).original_capacity == 8


def test_admin_audit_log_listing(client, admin_headers, tenant, make_slot):
    slot = make_slot()
    client.post(
        f"/tenants/{tenant.id}/locks", json={"slot_id": slot.id, "session_id": "s-9"},
    )

    resp = client.get(f"/admin/tenants/{tenant.id}/audit-logs?action=LOCK_ACQUIRE", headers=admin_headers)

    assert resp.status_code == 200
    rows = resp.get_json()
    assert len(rows) == 1
    assert rows[0]["actor"] == "s-9"


def test_conflict_is_retried_then_reported_as_503(app, client, tenant, service, make_slot, monkeypatch):
    slot = make_slot()
    calls = []

    def busy(*args):
        calls.append(args)
        raise TransactionConflict("Database is busy, please retry")

    monkeypatch.setattr(booking_transaction, "create_booking", busy)

    resp = client.post(f"/tenants/{tenant.id}/bookings", json=_booking_body(service, slot))

    assert resp.status_code == 503
    assert resp.headers["Retry-After"] == "1"
    assert resp.get_json()["code"] == "transaction_conflict"
    assert len(calls) == app.config["TX_RETRY_ATTEMPTS"]


def test_reschedule_endpoint(client, tenant, service, make_slot):
    old = make_slot(capacity=4)
    new = make_slot(capacity=4)
    base = f"/tenants/{tenant.id}/bookings"
    booking_id = client.post(base, json=_booking_body(service, old, visitors=2)).get_json()["id"]

    resp = client.post(f"{base}/{booking_id}/reschedule", json={"slot_id": new.id, "actor": "owner"})

    assert resp.status_code == 200
    assert resp.get_json()["slot_id"] == new.id
    assert fresh_slot(old.id).booked_count == 0
    assert fresh_slot(new.id).booked_count == 2


def test_visitors_endpoint(client, tenant, service, make_slot):
    slot = make_slot(capacity=3)
    base = f"/tenants/{tenant.id}/bookings"
    booking_id = client.post(base, json=_booking_body(service, slot, visitors=1)).get_json()["id"]

    resp = client.post(f"{base}/{booking_id}/visitors", json={"adult_count": 2, "child_count": 1})
    assert resp.status_code == 200
    assert resp.get_json()["visitor_count"] == 3

    resp = client.post(f"{base}/{booking_id}/visitors", json={"adult_count": 4})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "capacity_exceeded"

    assert client.post(f"{base}/{booking_id}/visitors", json={"adult_count": 0}).status_code == 400
