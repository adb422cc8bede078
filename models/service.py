from models.db import db
from utils.clock import utcnow

class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # capacity given to newly created slots unless the slot states its own
    default_capacity = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_services_tenant_name"),
    )
