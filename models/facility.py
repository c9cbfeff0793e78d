from datetime import time

from models.db import db
from models.types import UTCDateTime, utcnow

FACILITY_STATUSES = ("available", "maintenance", "closed")


class Facility(db.Model):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    # category tag matched against MembershipType.facilities_access, e.g. tennis_court
    type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    capacity = db.Column(db.Integer, nullable=True)
    location = db.Column(db.String(100), nullable=True)

    # local time-of-day in the club's time zone
    operating_hours_start = db.Column(db.Time, nullable=False, default=time(8, 0))
    operating_hours_end = db.Column(db.Time, nullable=False, default=time(22, 0))

    booking_duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    booking_buffer_minutes = db.Column(db.Integer, nullable=False, default=15)
    requires_supervision = db.Column(db.Boolean, nullable=False, default=False)

    # status values: available, maintenance, closed
    status = db.Column(db.String(20), nullable=False, default="available")

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = db.Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    bookings = db.relationship("Booking", back_populates="facility", lazy="dynamic")

    __table_args__ = (
        db.CheckConstraint("status IN ('available', 'maintenance', 'closed')", name="ck_facility_status"),
    )
