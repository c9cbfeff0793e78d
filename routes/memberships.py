from flask import Blueprint, jsonify, g

from models import db
from models.membership import Membership, MembershipType
from services import club_timezone
from services.repositories import SqlMembershipDirectory
from models.types import utcnow
from utils.auth_context import login_required

membership_bp = Blueprint("membership", __name__, url_prefix="/memberships")


@membership_bp.get("/types")
@login_required
def membership_types():
    rows = (
        MembershipType.query
        .filter(MembershipType.is_active.is_(True))
        .order_by(MembershipType.price.asc(), MembershipType.name.asc())
        .all()
    )
    return jsonify([
        {
            "id": t.id,
            "name": t.name,
            "description": t.description,
            "duration_months": t.duration_months,
            "price": str(t.price),
            "facilities_access": sorted(t.facilities_access or []),
            "max_bookings_per_day": t.max_bookings_per_day,
            "max_booking_days_ahead": t.max_booking_days_ahead,
        }
        for t in rows
    ]), 200


@membership_bp.get("/me")
@login_required
def my_membership():
    today = utcnow().astimezone(club_timezone()).date()
    active = SqlMembershipDirectory(db.session).get_active_membership(g.user.id, today)
    if active is None:
        return jsonify(error="No active membership"), 404

    membership = db.session.get(Membership, active.membership_id)
    return jsonify(
        id=membership.id,
        membership_type=active.membership_type_name,
        status=membership.status,
        start_date=membership.start_date.isoformat(),
        end_date=membership.end_date.isoformat(),
        facilities_access=sorted(active.facilities_access),
        max_bookings_per_day=active.max_bookings_per_day,
        max_booking_days_ahead=active.max_booking_days_ahead,
    ), 200
