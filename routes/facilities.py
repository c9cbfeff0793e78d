from flask import Blueprint, request, jsonify, g
from sqlalchemy import func

from models import db
from models.facility import Facility, FACILITY_STATUSES
from security.rbac import require_roles
from services import build_availability
from utils.auth_context import login_required
from utils.audit import log_event
from utils.parsing import parse_date, parse_hhmm

facility_bp = Blueprint("facility", __name__, url_prefix="/facilities")


def _text(max_len, required=False):
    def parse(value):
        if value is None:
            if required:
                raise ValueError("is required")
            return None
        if not isinstance(value, str):
            raise ValueError("must be a string")
        value = value.strip()
        if required and len(value) < 2:
            raise ValueError("must be at least 2 characters")
        if len(value) > max_len:
            raise ValueError(f"must be at most {max_len} characters")
        return value or None
    return parse


def _int(lo, hi=None):
    def parse(value):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("must be an integer")
        if value < lo or (hi is not None and value > hi):
            raise ValueError(f"must be between {lo} and {hi}" if hi is not None else f"must be at least {lo}")
        return value
    return parse


def _flag(value):
    if not isinstance(value, bool):
        raise ValueError("must be true or false")
    return value


def _status(value):
    if value not in FACILITY_STATUSES:
        raise ValueError(f"must be one of {', '.join(FACILITY_STATUSES)}")
    return value


# request field -> (model attribute, parser). Fields not listed here are ignored.
FACILITY_FIELDS = {
    "name": ("name", _text(100, required=True)),
    "type": ("type", _text(50, required=True)),
    "description": ("description", _text(500)),
    "capacity": ("capacity", _int(1)),
    "location": ("location", _text(100)),
    "operating_hours_start": ("operating_hours_start", parse_hhmm),
    "operating_hours_end": ("operating_hours_end", parse_hhmm),
    "booking_duration_minutes": ("booking_duration_minutes", _int(15, 480)),
    "booking_buffer_minutes": ("booking_buffer_minutes", _int(0, 60)),
    "requires_supervision": ("requires_supervision", _flag),
    "status": ("status", _status),
}

REQUIRED_ON_CREATE = ("name", "type", "operating_hours_start", "operating_hours_end")


def _apply_fields(facility, data):
    errors = {}
    changed = []
    for field, (attr, parse) in FACILITY_FIELDS.items():
        if field not in data:
            continue
        try:
            setattr(facility, attr, parse(data[field]))
            changed.append(field)
        except ValueError as exc:
            errors[field] = str(exc)

    start, end = facility.operating_hours_start, facility.operating_hours_end
    if not errors and start is not None and end is not None and start >= end:
        errors["operating_hours_end"] = "must be after operating_hours_start"
    return changed, errors


def serialize_facility(f: Facility) -> dict:
    return {
        "id": f.id,
        "name": f.name,
        "type": f.type,
        "description": f.description,
        "capacity": f.capacity,
        "location": f.location,
        "operating_hours_start": f.operating_hours_start.strftime("%H:%M"),
        "operating_hours_end": f.operating_hours_end.strftime("%H:%M"),
        "booking_duration_minutes": f.booking_duration_minutes,
        "booking_buffer_minutes": f.booking_buffer_minutes,
        "requires_supervision": f.requires_supervision,
        "status": f.status,
    }


@facility_bp.get("")
@login_required
def list_facilities():
    facility_type = (request.args.get("type") or "").strip()
    status = (request.args.get("status") or "").strip()
    available_only = request.args.get("available_only", "").lower() in ("1", "true", "yes")

    q = Facility.query
    if facility_type:
        q = q.filter(Facility.type == facility_type)
    if status:
        q = q.filter(Facility.status == status)
    if available_only:
        q = q.filter(Facility.status == "available")

    rows = q.order_by(Facility.name.asc()).limit(200).all()
    return jsonify([serialize_facility(f) for f in rows]), 200


@facility_bp.get("/types")
@login_required
def facility_types():
    rows = (
        db.session.query(Facility.type, func.count(Facility.id))
        .group_by(Facility.type)
        .order_by(Facility.type.asc())
        .all()
    )
    return jsonify([{"type": t, "count": c} for t, c in rows]), 200


@facility_bp.get("/<int:facility_id>")
@login_required
def get_facility(facility_id: int):
    facility = db.session.get(Facility, facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404
    return jsonify(serialize_facility(facility)), 200


@facility_bp.get("/<int:facility_id>/available-slots")
@login_required
def available_slots(facility_id: int):
    date_str = request.args.get("date")
    if not date_str:
        return jsonify(error="Date parameter is required."), 400
    try:
        day = parse_date(date_str)
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    availability = build_availability().get_available_slots(facility_id, day)
    return jsonify(availability.to_dict()), 200


# ---------- STAFF/ADMIN: manage facilities ----------
@facility_bp.post("")
@require_roles("STAFF", "ADMIN")
def create_facility():
    data = request.get_json(silent=True) or {}
    missing = [f for f in REQUIRED_ON_CREATE if data.get(f) in (None, "")]
    if missing:
        return jsonify(error="Missing required fields", missing=missing), 400

    facility = Facility()
    _, errors = _apply_fields(facility, data)
    if errors:
        return jsonify(error="Invalid facility", details=errors), 400

    db.session.add(facility)
    db.session.commit()

    log_event("FACILITY_CREATE", user_id=g.user.id, entity="facility", entity_id=facility.id)
    return jsonify(serialize_facility(facility)), 201


@facility_bp.put("/<int:facility_id>")
@require_roles("STAFF", "ADMIN")
def update_facility(facility_id: int):
    data = request.get_json(silent=True) or {}
    facility = db.session.get(Facility, facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    changed, errors = _apply_fields(facility, data)
    if errors:
        db.session.rollback()
        return jsonify(error="Invalid facility", details=errors), 400
    if not changed:
        return jsonify(error="No updatable fields provided"), 400

    db.session.commit()

    log_event("FACILITY_UPDATE", user_id=g.user.id, entity="facility", entity_id=facility.id, metadata={"fields": changed})
    return jsonify(serialize_facility(facility)), 200


@facility_bp.put("/<int:facility_id>/status")
@require_roles("STAFF", "ADMIN")
def update_facility_status(facility_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in FACILITY_STATUSES:
        return jsonify(error=f"status must be one of {', '.join(FACILITY_STATUSES)}"), 400

    facility = db.session.get(Facility, facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    facility.status = status
    db.session.commit()

    log_event("FACILITY_STATUS", user_id=g.user.id, entity="facility", entity_id=facility.id, metadata={"status": status})
    return jsonify(serialize_facility(facility)), 200


@facility_bp.delete("/<int:facility_id>")
@require_roles("STAFF", "ADMIN")
def delete_facility(facility_id: int):
    facility = db.session.get(Facility, facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    # booking history keeps its facility; such facilities are closed instead of removed
    if facility.bookings.first() is not None:
        facility.status = "closed"
        db.session.commit()
        log_event("FACILITY_CLOSE", user_id=g.user.id, entity="facility", entity_id=facility_id)
        return jsonify(message="Facility has bookings and was closed instead", facility=serialize_facility(facility)), 200

    db.session.delete(facility)
    db.session.commit()
    log_event("FACILITY_DELETE", user_id=g.user.id, entity="facility", entity_id=facility_id)
    return jsonify(message="Facility deleted successfully"), 200
