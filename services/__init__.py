"""Per-request wiring of the booking core to the Flask app and its session."""
from datetime import timezone
from zoneinfo import ZoneInfo

from flask import current_app

from models import db
from services.admission import BookingAdmission
from services.availability import SlotAvailability
from services.locks import AdmissionLockRegistry
from services.repositories import (
    SqlBookingRepository,
    SqlFacilityCatalog,
    SqlMembershipDirectory,
)

LOCKS_EXTENSION = "admission_locks"


def init_app(app):
    app.extensions[LOCKS_EXTENSION] = AdmissionLockRegistry(
        timeout_seconds=app.config.get("BOOKING_LOCK_TIMEOUT_SECONDS", 5)
    )


def club_timezone():
    name = current_app.config.get("CLUB_TIMEZONE", "UTC") or "UTC"
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def _booking_repository(session):
    return SqlBookingRepository(session, current_app.extensions[LOCKS_EXTENSION])


def build_admission(session=None, clock=None) -> BookingAdmission:
    if session is None:
        session = db.session
    return BookingAdmission(
        bookings=_booking_repository(session),
        facilities=SqlFacilityCatalog(session),
        memberships=SqlMembershipDirectory(session),
        tz=club_timezone(),
        clock=clock,
        conflict_retries=current_app.config.get("BOOKING_CONFLICT_RETRIES", 1),
        notes_max_length=current_app.config.get("BOOKING_NOTES_MAX_LENGTH", 500),
    )


def build_availability(session=None) -> SlotAvailability:
    if session is None:
        session = db.session
    return SlotAvailability(
        facilities=SqlFacilityCatalog(session),
        bookings=_booking_repository(session),
        tz=club_timezone(),
    )
