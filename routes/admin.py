from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from models import db
from models.audit_log import AuditLog
from models.service import Service
from models.slot import Slot
from models.tenant import Tenant
from schemas.slots import ServiceCreate, SlotCreate, SlotResize, TenantCreate
from security.rbac import require_admin
from services import slot_store
from services.errors import NotFound
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

ADMIN_ACTOR = "admin"


def _slot_json(s: Slot):
    return {
        "id": s.id,
        "service_id": s.service_id,
        "date": s.slot_date.isoformat(),
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "original_capacity": s.original_capacity,
        "booked_count": s.booked_count,
        "available_capacity": s.available_capacity,
        "is_available": s.is_available,
    }


def _get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


# ---------- tenants & services ----------
@admin_bp.post("/tenants")
@require_admin
def create_tenant():
    data = TenantCreate.model_validate(request.get_json(silent=True) or {})
    tenant = Tenant(name=data.name)
    db.session.add(tenant)
    db.session.commit()

    log_event("TENANT_CREATE", tenant_id=tenant.id, actor=ADMIN_ACTOR, entity="tenant", entity_id=tenant.id)
    return jsonify(id=tenant.id, name=tenant.name), 201


@admin_bp.post("/tenants/<int:tenant_id>/services")
@require_admin
def create_service(tenant_id: int):
    data = ServiceCreate.model_validate(request.get_json(silent=True) or {})
    _get_tenant(tenant_id)

    service = Service(
        tenant_id=tenant_id,
        name=data.name,
        description=data.description,
        default_capacity=data.default_capacity,
    )
    db.session.add(service)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Service name already exists"), 409

    log_event("SERVICE_CREATE", tenant_id=tenant_id, actor=ADMIN_ACTOR, entity="service", entity_id=service.id)
    return jsonify(id=service.id, name=service.name), 201


# ---------- slots ----------
@admin_bp.post("/tenants/<int:tenant_id>/slots")
@require_admin
def create_slot(tenant_id: int):
    data = SlotCreate.model_validate(request.get_json(silent=True) or {})

    service = db.session.get(Service, data.service_id)
    if not service or service.tenant_id != tenant_id:
        return jsonify(error="Service not found"), 404

    capacity = data.capacity if data.capacity is not None else service.default_capacity
    slot = Slot(
        tenant_id=tenant_id,
        service_id=service.id,
        slot_date=data.slot_date,
        start_time=data.start_time,
        end_time=data.end_time,
        original_capacity=capacity,
        booked_count=0,
        available_capacity=capacity,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Slot already exists for that service and time"), 409

    log_event("SLOT_CREATE", tenant_id=tenant_id, actor=ADMIN_ACTOR, entity="slot", entity_id=slot.id)
    return jsonify(_slot_json(slot)), 201


@admin_bp.post("/tenants/<int:tenant_id>/slots/<int:slot_id>/deactivate")
@require_admin
def deactivate_slot(tenant_id: int, slot_id: int):
    slot = slot_store.set_availability(tenant_id, slot_id, False)
    log_event("SLOT_DEACTIVATE", tenant_id=tenant_id, actor=ADMIN_ACTOR, entity="slot", entity_id=slot_id)
    return jsonify(_slot_json(slot)), 200


@admin_bp.post("/tenants/<int:tenant_id>/slots/<int:slot_id>/activate")
@require_admin
def activate_slot(tenant_id: int, slot_id: int):
    slot = slot_store.set_availability(tenant_id, slot_id, True)
    log_event("SLOT_ACTIVATE", tenant_id=tenant_id, actor=ADMIN_ACTOR, entity="slot", entity_id=slot_id)
    return jsonify(_slot_json(slot)), 200


@admin_bp.post("/tenants/<int:tenant_id>/slots/<int:slot_id>/capacity")
@require_admin
def resize_slot(tenant_id: int, slot_id: int):
    data = SlotResize.model_validate(request.get_json(silent=True) or {})
    slot = slot_store.resize(tenant_id, slot_id, data.capacity)
    log_event(
        "SLOT_RESIZE", tenant_id=tenant_id, actor=ADMIN_ACTOR, entity="slot", entity_id=slot_id,
        metadata={"capacity": data.capacity},
    )
    return jsonify(_slot_json(slot)), 200


# ---------- audit trail ----------
@admin_bp.get("/tenants/<int:tenant_id>/audit-logs")
@require_admin
def list_audit_logs(tenant_id: int):
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))
    action = request.args.get("action")

    q = AuditLog.query.filter(AuditLog.tenant_id == tenant_id)
    if action:
        q = q.filter(AuditLog.action == action)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat(),
            "actor": r.actor,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": r.metadata_json,
        }
        for r in rows
    ]), 200
