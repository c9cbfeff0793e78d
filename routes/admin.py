from decimal import Decimal, InvalidOperation

from flask import Blueprint, jsonify, g, request
from sqlalchemy import case, func

from models import db
from models.booking import Booking, BOOKING_STATUSES
from models.facility import Facility
from models.membership import Membership, MembershipType, MEMBERSHIP_STATUSES
from models.user import User
from routes.booking import local_day_range, serialize_booking
from security.rbac import require_roles
from services import build_admission, club_timezone
from utils.audit import log_event
from utils.parsing import parse_date, parse_pagination

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _date_args(required=False):
    start_raw = request.args.get("start_date")
    end_raw = request.args.get("end_date")
    if required and (not start_raw or not end_raw):
        raise ValueError("start_date and end_date are required")
    start = parse_date(start_raw) if start_raw else None
    end = parse_date(end_raw) if end_raw else None
    return local_day_range(start, end, club_timezone())


# ---------- STAFF/ADMIN: list all bookings ----------
@admin_bp.get("/bookings")
@require_roles("STAFF", "ADMIN")
def list_all_bookings():
    status = request.args.get("status")
    facility_id = request.args.get("facility_id", type=int)
    user_id = request.args.get("user_id", type=int)
    try:
        lo, hi = _date_args()
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
    page, limit, offset = parse_pagination(request.args, default_limit=50)

    q = Booking.query
    if status:
        q = q.filter(Booking.status == status)
    if facility_id:
        q = q.filter(Booking.facility_id == facility_id)
    if user_id:
        q = q.filter(Booking.user_id == user_id)
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


# ---------- STAFF/ADMIN: status transitions (completed / no_show / cancelled) ----------
@admin_bp.put("/bookings/<int:booking_id>/status")
@require_roles("STAFF", "ADMIN")
def update_booking_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    notes = data.get("notes")
    if status not in BOOKING_STATUSES:
        return jsonify(error=f"status must be one of {', '.join(BOOKING_STATUSES)}"), 400
    if notes is not None and (not isinstance(notes, str) or len(notes) > 500):
        return jsonify(error="notes must be a string of at most 500 characters"), 400

    booking = build_admission().update_status(booking_id, status)
    if notes:
        booking.notes = notes
        db.session.commit()

    log_event("BOOKING_STATUS", user_id=g.user.id, entity="booking", entity_id=booking_id, metadata={"status": status})
    return jsonify(message="Booking updated successfully", booking=serialize_booking(booking)), 200


# ---------- STAFF/ADMIN: cancel any booking ----------
@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_roles("STAFF", "ADMIN")
def admin_cancel_booking(booking_id: int):
    booking = build_admission().cancel_booking_privileged(booking_id)

    log_event("ADMIN_BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(message="Cancelled by staff", booking=serialize_booking(booking)), 200


@admin_bp.get("/bookings/stats")
@require_roles("STAFF", "ADMIN")
def booking_stats():
    try:
        lo, hi = _date_args(required=True)
    except ValueError:
        return jsonify(error="start_date and end_date are required (YYYY-MM-DD)"), 400

    row = (
        db.session.query(
            func.count(Booking.id),
            func.count(case((Booking.status == "confirmed", 1))),
            func.count(case((Booking.status == "cancelled", 1))),
            func.count(case((Booking.status == "completed", 1))),
            func.count(case((Booking.status == "no_show", 1))),
            func.coalesce(func.sum(Booking.total_cost), 0),
            func.count(func.distinct(Booking.user_id)),
            func.count(func.distinct(Booking.facility_id)),
        )
        .filter(Booking.start_time >= lo, Booking.start_time < hi)
        .one()
    )
    total, confirmed, cancelled, completed, no_show, revenue, users, facilities = row
    return jsonify(stats={
        "total_bookings": total,
        "confirmed_bookings": confirmed,
        "cancelled_bookings": cancelled,
        "completed_bookings": completed,
        "no_show_bookings": no_show,
        "total_revenue": str(revenue),
        "unique_users": users,
        "facilities_used": facilities,
    }), 200


@admin_bp.get("/facilities/utilization")
@require_roles("STAFF", "ADMIN")
def facility_utilization():
    try:
        lo, hi = _date_args(required=True)
    except ValueError:
        return jsonify(error="start_date and end_date are required (YYYY-MM-DD)"), 400

    rows = (
        db.session.query(
            Facility.id,
            Facility.name,
            Facility.type,
            Facility.capacity,
            func.count(Booking.id),
            func.count(case((Booking.status == "confirmed", 1))),
            func.count(case((Booking.status == "completed", 1))),
            func.count(case((Booking.status == "cancelled", 1))),
        )
        .outerjoin(
            Booking,
            (Booking.facility_id == Facility.id)
            & (Booking.start_time >= lo)
            & (Booking.start_time < hi),
        )
        .group_by(Facility.id, Facility.name, Facility.type, Facility.capacity)
        .order_by(func.count(Booking.id).desc(), Facility.name.asc())
        .all()
    )
    return jsonify([
        {
            "id": fid,
            "name": name,
            "type": ftype,
            "capacity": capacity,
            "total_bookings": total,
            "confirmed_bookings": confirmed,
            "completed_bookings": completed,
            "cancelled_bookings": cancelled,
        }
        for fid, name, ftype, capacity, total, confirmed, completed, cancelled in rows
    ]), 200


# ---------- ADMIN: membership directory upkeep ----------
@admin_bp.post("/membership-types")
@require_roles("ADMIN")
def create_membership_type():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    access = data.get("facilities_access")
    if not name:
        return jsonify(error="name is required"), 400
    if not isinstance(access, list) or not all(isinstance(t, str) and t.strip() for t in access):
        return jsonify(error="facilities_access must be a list of facility types"), 400

    try:
        price = Decimal(str(data.get("price", "0")))
        duration_months = int(data.get("duration_months", 1))
        per_day = int(data.get("max_bookings_per_day", 5))
        days_ahead = int(data.get("max_booking_days_ahead", 30))
    except (InvalidOperation, TypeError, ValueError):
        return jsonify(error="price, duration_months and limits must be numbers"), 400
    if price < 0 or duration_months < 1 or per_day < 0 or days_ahead < 0:
        return jsonify(error="price and limits must not be negative"), 400

    mtype = MembershipType(
        name=name,
        description=data.get("description"),
        duration_months=duration_months,
        price=price,
        facilities_access=sorted({t.strip() for t in access}),
        max_bookings_per_day=per_day,
        max_booking_days_ahead=days_ahead,
    )
    db.session.add(mtype)
    db.session.commit()

    log_event("MEMBERSHIP_TYPE_CREATE", user_id=g.user.id, entity="membership_type", entity_id=mtype.id)
    return jsonify(id=mtype.id, name=mtype.name, facilities_access=mtype.facilities_access), 201


@admin_bp.post("/memberships")
@require_roles("ADMIN")
def grant_membership():
    data = request.get_json(silent=True) or {}
    status = data.get("status", "active")
    if status not in MEMBERSHIP_STATUSES:
        return jsonify(error=f"status must be one of {', '.join(MEMBERSHIP_STATUSES)}"), 400
    try:
        start_date = parse_date(data.get("start_date"))
        end_date = parse_date(data.get("end_date"))
    except ValueError:
        return jsonify(error="start_date and end_date are required (YYYY-MM-DD)"), 400
    if end_date < start_date:
        return jsonify(error="end_date must not be before start_date"), 400

    user = db.session.get(User, data.get("user_id")) if data.get("user_id") else None
    mtype = db.session.get(MembershipType, data.get("membership_type_id")) if data.get("membership_type_id") else None
    if not user or not mtype or not mtype.is_active:
        return jsonify(error="User or membership type not found"), 404

    membership = Membership(
        user_id=user.id,
        membership_type_id=mtype.id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        notes=data.get("notes"),
    )
    db.session.add(membership)
    db.session.commit()

    log_event("MEMBERSHIP_GRANT", user_id=g.user.id, entity="membership", entity_id=membership.id, metadata={"member_id": user.id})
    return jsonify(id=membership.id, status=membership.status, end_date=membership.end_date.isoformat()), 201
