from models.db import db
from models.types import UTCDateTime, utcnow

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
STATUS_NO_SHOW = "no_show"

BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED, STATUS_NO_SHOW)

# bookings in these states occupy the facility calendar
CALENDAR_BLOCKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED)

# bookings in these states count against the member's daily allowance and can be cancelled
OPEN_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)

    start_time = db.Column(UTCDateTime, nullable=False, index=True)
    end_time = db.Column(UTCDateTime, nullable=False)

    # status values: pending, confirmed, cancelled, completed, no_show
    status = db.Column(db.String(20), nullable=False, default=STATUS_CONFIRMED, index=True)
    notes = db.Column(db.Text, nullable=True)
    total_cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = db.Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    facility = db.relationship("Facility", back_populates="bookings")
    user = db.relationship("User")

    __table_args__ = (
        db.CheckConstraint("start_time < end_time", name="ck_booking_time_order"),
        db.CheckConstraint("total_cost >= 0", name="ck_booking_cost_non_negative"),
        db.Index("ix_bookings_facility_start", "facility_id", "start_time"),
    )
