"""
Booking admission: decides whether a reservation may be committed and
commits it atomically.

Every check runs in the request's session transaction. The daily-limit
recount, the overlap scan and the insert happen inside the member's and then
the facility's exclusive regions, so two admissions for overlapping intervals
on the same facility can never both commit, and a member's concurrent
requests for different facilities cannot overrun the daily limit.
"""
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from models.booking import (
    Booking,
    BOOKING_STATUSES,
    CALENDAR_BLOCKING_STATUSES,
    OPEN_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_NO_SHOW,
    STATUS_PENDING,
)
from services.errors import (
    AdvanceWindowExceeded,
    BookingConflict,
    BookingError,
    BookingNotFound,
    DailyLimitExceeded,
    EntitlementDenied,
    FacilityUnavailable,
    InvalidStatusTransition,
    MembershipRequired,
    NotFoundOrNotCancellable,
    TransientBookingFailure,
    ValidationError,
)
from services.intervals import Interval, find_overlapping
from services.repositories import (
    TRANSIENT_ERRORS,
    BookingRepository,
    FacilityCatalog,
    MembershipDirectory,
)
from utils.logger import get_logger

logger = get_logger(__name__)

# target status -> statuses it may be reached from
STATUS_TRANSITIONS = {
    STATUS_COMPLETED: {STATUS_CONFIRMED},
    STATUS_NO_SHOW: {STATUS_CONFIRMED},
    STATUS_CANCELLED: {STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_NO_SHOW},
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingAdmission:
    def __init__(
        self,
        bookings: BookingRepository,
        facilities: FacilityCatalog,
        memberships: MembershipDirectory,
        tz=timezone.utc,
        clock: Optional[Callable[[], datetime]] = None,
        conflict_retries: int = 1,
        notes_max_length: int = 500,
    ):
        self.bookings = bookings
        self.facilities = facilities
        self.memberships = memberships
        self.tz = tz
        self.clock = clock or _utc_now
        self.conflict_retries = max(0, conflict_retries)
        self.notes_max_length = notes_max_length

    # ---------- create ----------

    def create_booking(self, user_id, facility_id, start_time: datetime, end_time: datetime,
                       notes: Optional[str] = None) -> Booking:
        attempts = self.conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                booking = self._admit(user_id, facility_id, start_time, end_time, notes)
            except BookingError as exc:
                self.bookings.rollback()
                logger.info(
                    "Booking rejected user=%s facility=%s code=%s: %s",
                    user_id, facility_id, exc.code, exc.message,
                )
                raise
            except TRANSIENT_ERRORS as exc:
                self.bookings.rollback()
                logger.warning(
                    "Transient failure admitting booking user=%s facility=%s attempt=%d/%d: %s",
                    user_id, facility_id, attempt, attempts, exc,
                )
                if attempt == attempts:
                    raise TransientBookingFailure(
                        "The facility is busy, please try again."
                    ) from exc
                continue
            except Exception:
                self.bookings.rollback()
                raise

            logger.info(
                "Booking %s admitted user=%s facility=%s %s-%s",
                booking.id, user_id, facility_id,
                booking.start_time.isoformat(), booking.end_time.isoformat(),
            )
            return booking

    def _admit(self, user_id, facility_id, start_time, end_time, notes):
        now = self.clock()
        requested = self._check_request(start_time, end_time, notes, now)
        facility = self._check_facility(facility_id, requested)
        membership = self._check_membership(user_id, facility, now)
        self._check_daily_limit(user_id, requested, membership)
        self._check_advance_window(requested, membership, now)

        # member before facility, the same order everywhere
        with self.bookings.exclusive_member(user_id), self.bookings.exclusive_facility(facility.id):
            # other facilities may have admitted this member since the first count
            self._check_daily_limit(user_id, requested, membership)

            existing = self.bookings.list_for_facility_with_lock(
                facility.id, CALENDAR_BLOCKING_STATUSES, ends_after=requested.start
            )
            clash = find_overlapping(
                requested, (Interval(b.start_time, b.end_time) for b in existing)
            )
            if clash is not None:
                raise BookingConflict(
                    "Facility is already booked for this time slot.",
                    conflicting_start=clash.start.isoformat(),
                    conflicting_end=clash.end.isoformat(),
                )

            booking = Booking(
                user_id=user_id,
                facility_id=facility.id,
                start_time=requested.start,
                end_time=requested.end,
                status=STATUS_CONFIRMED,
                notes=notes,
                total_cost=Decimal("0.00"),
            )
            self.bookings.insert(booking)
            self.bookings.commit()
        return booking

    def _check_request(self, start_time, end_time, notes, now) -> Interval:
        if not isinstance(start_time, datetime) or not isinstance(end_time, datetime):
            raise ValidationError("start_time and end_time are required")
        if start_time.tzinfo is None or end_time.tzinfo is None:
            raise ValidationError("start_time and end_time must include a time zone")
        if start_time >= end_time:
            raise ValidationError("end_time must be after start_time")
        if start_time <= now:
            raise ValidationError("start_time must be in the future")
        if notes is not None and len(notes) > self.notes_max_length:
            raise ValidationError(f"notes must be at most {self.notes_max_length} characters")
        return Interval(start_time.astimezone(timezone.utc), end_time.astimezone(timezone.utc))

    def _check_facility(self, facility_id, requested: Interval):
        facility = self.facilities.get_facility(facility_id)
        if facility is None or facility.status != "available":
            raise FacilityUnavailable("Facility not available or does not exist.")

        duration = facility.booking_duration_minutes
        if requested.end - requested.start != timedelta(minutes=duration):
            raise FacilityUnavailable(
                f"Booking duration must be exactly {duration} minutes.",
                duration_minutes=duration,
            )

        local_start = requested.start.astimezone(self.tz)
        local_end = requested.end.astimezone(self.tz)
        if (
            local_start.date() != local_end.date()
            or local_start.time() < facility.operating_hours_start
            or local_end.time() > facility.operating_hours_end
        ):
            raise FacilityUnavailable(
                "Booking time is outside facility operating hours.",
                operating_hours_start=facility.operating_hours_start.strftime("%H:%M"),
                operating_hours_end=facility.operating_hours_end.strftime("%H:%M"),
            )
        return facility

    def _check_membership(self, user_id, facility, now):
        today = now.astimezone(self.tz).date()
        membership = self.memberships.get_active_membership(user_id, today)
        if membership is None:
            raise MembershipRequired("Active membership required to make bookings.")
        if not membership.allows(facility.type):
            raise EntitlementDenied("Your membership does not include access to this facility.")
        return membership

    def _local_day_bounds(self, instant: datetime):
        day = instant.astimezone(self.tz).date()
        start = datetime.combine(day, time.min, tzinfo=self.tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return start, end

    def _check_daily_limit(self, user_id, requested: Interval, membership):
        day_start, day_end = self._local_day_bounds(requested.start)
        count = self.bookings.count_for_user_starting_between(
            user_id, day_start, day_end, OPEN_STATUSES
        )
        if count >= membership.max_bookings_per_day:
            raise DailyLimitExceeded(
                f"Daily booking limit of {membership.max_bookings_per_day} exceeded.",
                max_bookings_per_day=membership.max_bookings_per_day,
            )

    def _check_advance_window(self, requested: Interval, membership, now):
        today_start, _ = self._local_day_bounds(now)
        days_ahead = (requested.start.astimezone(self.tz) - today_start) // timedelta(days=1)
        if days_ahead > membership.max_booking_days_ahead:
            raise AdvanceWindowExceeded(
                f"Bookings can only be made {membership.max_booking_days_ahead} days in advance.",
                max_booking_days_ahead=membership.max_booking_days_ahead,
            )

    # ---------- cancel / status ----------

    def cancel_booking(self, booking_id, requesting_user_id) -> Booking:
        """Owner cancellation. Not-found, not-owned and wrong-status look the same."""
        return self._cancel(booking_id, user_id=requesting_user_id)

    def cancel_booking_privileged(self, booking_id) -> Booking:
        return self._cancel(booking_id, user_id=None)

    def _cancel(self, booking_id, user_id):
        booking = self.bookings.cancel_where(booking_id, OPEN_STATUSES, user_id=user_id)
        if booking is None:
            self.bookings.rollback()
            raise NotFoundOrNotCancellable()
        self.bookings.commit()
        logger.info("Booking %s cancelled by user=%s", booking_id, user_id if user_id is not None else "staff")
        return booking

    def update_status(self, booking_id, status: str) -> Booking:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown booking status: {status}")

        booking = self.bookings.get(booking_id, for_update=True)
        if booking is None:
            self.bookings.rollback()
            raise BookingNotFound("Booking not found.")

        allowed_from = STATUS_TRANSITIONS.get(status, set())
        if booking.status not in allowed_from:
            current = booking.status
            self.bookings.rollback()
            raise InvalidStatusTransition(
                f"Cannot change booking status from {current} to {status}.",
                current_status=current,
            )

        self.bookings.update_status(booking, status)
        self.bookings.commit()
        logger.info("Booking %s status -> %s", booking_id, status)
        return booking
