from datetime import datetime, time, timedelta

from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import Booking, BOOKING_STATUSES
from security.rbac import is_staff
from services import build_admission, club_timezone
from services.errors import BookingError
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_datetime, parse_date, parse_pagination

booking_bp = Blueprint("booking", __name__)


def serialize_booking(b: Booking, include_facility: bool = False) -> dict:
    out = {
        "id": b.id,
        "user_id": b.user_id,
        "facility_id": b.facility_id,
        "start_time": b.start_time.isoformat(),
        "end_time": b.end_time.isoformat(),
        "status": b.status,
        "notes": b.notes,
        "total_cost": str(b.total_cost),
        "created_at": b.created_at.isoformat(),
        "updated_at": b.updated_at.isoformat() if b.updated_at else None,
    }
    if include_facility and b.facility is not None:
        out["facility"] = {
            "id": b.facility.id,
            "name": b.facility.name,
            "type": b.facility.type,
            "location": b.facility.location,
        }
    return out


def local_day_range(start_date, end_date, tz):
    """[start of start_date, start of the day after end_date) in club time."""
    lo = datetime.combine(start_date, time.min, tzinfo=tz) if start_date else None
    hi = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz) if end_date else None
    return lo, hi


# ---------- MEMBERS: book a facility (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    facility_id = data.get("facility_id")
    notes = data.get("notes")

    if not facility_id or not data.get("start_time") or not data.get("end_time"):
        return jsonify(error="facility_id, start_time, end_time are required"), 400
    if notes is not None and not isinstance(notes, str):
        return jsonify(error="notes must be a string"), 400

    tz = club_timezone()
    try:
        facility_id = int(facility_id)
        start_time = parse_datetime(data.get("start_time"), tz)
        end_time = parse_datetime(data.get("end_time"), tz)
    except (TypeError, ValueError):
        return jsonify(error="Invalid input. Use an integer facility_id and ISO datetimes e.g. 2026-01-20T18:00:00+00:00"), 400

    admission = build_admission()
    try:
        booking = admission.create_booking(g.user.id, facility_id, start_time, end_time, notes=notes)
    except BookingError as exc:
        log_event(
            "BOOKING_CREATE_FAIL",
            user_id=g.user.id,
            entity="facility",
            entity_id=facility_id,
            metadata={"code": exc.code},
        )
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"facility_id": facility_id},
    )
    return jsonify(message="Booking created successfully", booking=serialize_booking(booking)), 201


# ---------- MEMBERS: view my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    if status and status not in BOOKING_STATUSES:
        return jsonify(error="Unknown status"), 400

    try:
        start_date = parse_date(request.args["start_date"]) if request.args.get("start_date") else None
        end_date = parse_date(request.args["end_date"]) if request.args.get("end_date") else None
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    page, limit, offset = parse_pagination(request.args)
    lo, hi = local_day_range(start_date, end_date, club_timezone())

    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        q = q.filter_by(status=status)
    if lo is not None:
        q = q.filter(Booking.start_time >= lo)
    if hi is not None:
        q = q.filter(Booking.start_time < hi)

    total = q.count()
    rows = q.order_by(Booking.start_time.desc()).offset(offset).limit(limit).all()
    return jsonify(
        bookings=[serialize_booking(b, include_facility=True) for b in rows],
        pagination={"page": page, "limit": limit, "total": total},
    ), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    # other members' bookings look exactly like missing ones
    if not booking or (booking.user_id != g.user.id and not is_staff()):
        return jsonify(error="Booking not found"), 404
    return jsonify(booking=serialize_booking(booking, include_facility=True)), 200


# ---------- MEMBERS: cancel own booking ----------
@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    booking = build_admission().cancel_booking(booking_id, g.user.id)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(message="Booking cancelled successfully", booking=serialize_booking(booking)), 200


@booking_bp.delete("/bookings/<int:booking_id>")
@login_required
def cancel_booking_alias(booking_id: int):
    return cancel_booking(booking_id)
