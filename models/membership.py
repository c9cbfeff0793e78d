from models.db import db
from models.types import UTCDateTime, utcnow

MEMBERSHIP_STATUSES = ("active", "expired", "cancelled", "pending")


class MembershipType(db.Model):
    __tablename__ = "membership_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    duration_months = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    # list of facility type tags, e.g. ["tennis_court", "swimming_pool"]
    facilities_access = db.Column(db.JSON, nullable=False, default=list)
    max_bookings_per_day = db.Column(db.Integer, nullable=False, default=5)
    max_booking_days_ahead = db.Column(db.Integer, nullable=False, default=30)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)


class Membership(db.Model):
    __tablename__ = "memberships"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    membership_type_id = db.Column(db.Integer, db.ForeignKey("membership_types.id"), nullable=False)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # status values: active, expired, cancelled, pending
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    auto_renew = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = db.Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    membership_type = db.relationship("MembershipType")
