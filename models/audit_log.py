from models.db import db
from models.types import UTCDateTime, utcnow

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # nullable for unauth events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. BOOKING_CREATE, BOOKING_CONFLICT
    entity = db.Column(db.String(40), nullable=True)   # booking, facility, membership
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    metadata_json = db.Column(db.JSON, nullable=True)

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False, index=True)
