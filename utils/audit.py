import json
from flask import request, has_request_context
from models import db
from models.audit_log import AuditLog

def log_event(action: str, tenant_id=None, actor=None, entity=None, entity_id=None, metadata=None, commit=True):
    ip = None
    user_agent = ""
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        tenant_id=tenant_id,
        actor=actor,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    # inside a core transaction the row rides on the caller's commit
    if commit:
        db.session.commit()
    return row
