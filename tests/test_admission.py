from datetime import date, datetime, timedelta, timezone

import pytest

from models import db
from models.booking import Booking
from services import build_admission
from services.errors import (
    AdvanceWindowExceeded,
    BookingConflict,
    DailyLimitExceeded,
    EntitlementDenied,
    FacilityUnavailable,
    MembershipRequired,
    TransientBookingFailure,
    ValidationError,
)

NOW = datetime(2030, 1, 10, 9, 0, tzinfo=timezone.utc)
TOMORROW = date(2030, 1, 11)


def at(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def admission(app):
    return build_admission(clock=lambda: NOW)


@pytest.fixture
def facility(make_facility):
    return make_facility()


@pytest.fixture
def member(make_user, make_membership, make_membership_type):
    user = make_user()
    make_membership(
        user,
        make_membership_type(max_bookings_per_day=2),
        start_date=date(2030, 1, 1),
        end_date=date(2030, 12, 31),
    )
    return user


@pytest.fixture
def other_member(make_user, make_membership):
    user = make_user()
    make_membership(user, start_date=date(2030, 1, 1), end_date=date(2030, 12, 31))
    return user


def booking_count():
    return db.session.query(Booking).count()


def test_admits_valid_booking(admission, member, facility):
    booking = admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11), notes="doubles")

    assert booking.id is not None
    assert booking.status == "confirmed"
    assert booking.user_id == member.id
    assert booking.start_time == at(TOMORROW, 10)
    assert booking.end_time == at(TOMORROW, 11)
    assert booking.notes == "doubles"
    assert booking_count() == 1


def test_stored_times_come_back_as_utc(admission, member, facility):
    plus_two = timezone(timedelta(hours=2))
    start = datetime(2030, 1, 11, 12, 0, tzinfo=plus_two)
    booking = admission.create_booking(member.id, facility.id, start, start + timedelta(hours=1))

    db.session.expire_all()
    stored = db.session.get(Booking, booking.id)
    assert stored.start_time.tzinfo is not None
    assert stored.start_time == at(TOMORROW, 10)


def test_overlapping_booking_conflicts(admission, member, other_member, facility):
    admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))

    with pytest.raises(BookingConflict) as excinfo:
        admission.create_booking(other_member.id, facility.id, at(TOMORROW, 10, 30), at(TOMORROW, 11, 30))

    assert excinfo.value.code == "conflict"
    assert excinfo.value.status_code == 409
    assert booking_count() == 1


def test_back_to_back_bookings_are_allowed(admission, member, other_member, facility):
    admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.create_booking(other_member.id, facility.id, at(TOMORROW, 11), at(TOMORROW, 12))
    assert booking_count() == 2


def test_same_interval_on_other_facility_is_independent(admission, member, other_member, make_facility):
    court_1 = make_facility(name="Court 1")
    court_2 = make_facility(name="Court 2")
    admission.create_booking(member.id, court_1.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.create_booking(other_member.id, court_2.id, at(TOMORROW, 10), at(TOMORROW, 11))
    assert booking_count() == 2


def test_cancelled_booking_frees_the_slot(admission, member, other_member, facility):
    first = admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.cancel_booking(first.id, member.id)

    second = admission.create_booking(other_member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    assert second.status == "confirmed"


def test_completed_booking_still_blocks_the_calendar(admission, member, other_member, facility):
    first = admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.update_status(first.id, "completed")

    with pytest.raises(BookingConflict):
        admission.create_booking(other_member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))


@pytest.mark.parametrize("start,end", [
    (at(TOMORROW, 10), at(TOMORROW, 10)),
    (at(TOMORROW, 11), at(TOMORROW, 10)),
])
def test_rejects_empty_or_inverted_interval(admission, member, facility, start, end):
    with pytest.raises(ValidationError):
        admission.create_booking(member.id, facility.id, start, end)


def test_rejects_naive_datetimes(admission, member, facility):
    with pytest.raises(ValidationError):
        admission.create_booking(member.id, facility.id, datetime(2030, 1, 11, 10), datetime(2030, 1, 11, 11))


def test_rejects_start_in_the_past(admission, member, facility):
    yesterday = date(2030, 1, 9)
    with pytest.raises(ValidationError):
        admission.create_booking(member.id, facility.id, at(yesterday, 10), at(yesterday, 11))


def test_rejects_overlong_notes(admission, member, facility):
    with pytest.raises(ValidationError):
        admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11), notes="x" * 501)


def test_rejects_unknown_facility(admission, member):
    with pytest.raises(FacilityUnavailable):
        admission.create_booking(member.id, 9999, at(TOMORROW, 10), at(TOMORROW, 11))


@pytest.mark.parametrize("status", ["maintenance", "closed"])
def test_rejects_facility_that_is_not_available(admission, member, make_facility, status):
    facility = make_facility(status=status)
    with pytest.raises(FacilityUnavailable):
        admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))


def test_rejects_wrong_duration(admission, member, facility):
    with pytest.raises(FacilityUnavailable) as excinfo:
        admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11, 30))
    assert excinfo.value.details["duration_minutes"] == 60


@pytest.mark.parametrize("start_hour,start_minute", [(7, 0), (7, 30), (21, 30)])
def test_rejects_booking_outside_operating_hours(admission, member, facility, start_hour, start_minute):
    start = at(TOMORROW, start_hour, start_minute)
    with pytest.raises(FacilityUnavailable):
        admission.create_booking(member.id, facility.id, start, start + timedelta(hours=1))


def test_booking_may_end_exactly_at_closing(admission, member, facility):
    booking = admission.create_booking(member.id, facility.id, at(TOMORROW, 21), at(TOMORROW, 22))
    assert booking.end_time == at(TOMORROW, 22)


def test_requires_active_membership(admission, make_user, facility):
    user = make_user()
    with pytest.raises(MembershipRequired):
        admission.create_booking(user.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))


def test_expired_membership_is_not_active(admission, make_user, make_membership, facility):
    user = make_user()
    make_membership(user, start_date=date(2029, 1, 1), end_date=date(2030, 1, 9))
    with pytest.raises(MembershipRequired):
        admission.create_booking(user.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))


def test_suspended_membership_is_not_active(admission, make_user, make_membership, facility):
    user = make_user()
    make_membership(user, start_date=date(2030, 1, 1), end_date=date(2030, 12, 31), status="cancelled")
    with pytest.raises(MembershipRequired):
        admission.create_booking(user.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))


def test_membership_must_cover_facility_type(admission, member, make_facility):
    pool = make_facility(name="Pool", type="swimming_pool")
    with pytest.raises(EntitlementDenied):
        admission.create_booking(member.id, pool.id, at(TOMORROW, 10), at(TOMORROW, 11))


def test_newest_membership_wins(admission, make_user, make_membership, make_membership_type, make_facility):
    user = make_user()
    pool = make_facility(name="Pool", type="swimming_pool")
    make_membership(user, make_membership_type(name="Tennis"), start_date=date(2030, 1, 1), end_date=date(2030, 12, 31))
    make_membership(
        user,
        make_membership_type(name="Aquatics", facilities_access=["swimming_pool"]),
        start_date=date(2030, 1, 1),
        end_date=date(2030, 12, 31),
    )

    booking = admission.create_booking(user.id, pool.id, at(TOMORROW, 10), at(TOMORROW, 11))
    assert booking.facility_id == pool.id


def test_daily_limit(admission, member, make_facility):
    court_1 = make_facility(name="Court 1")
    court_2 = make_facility(name="Court 2")
    admission.create_booking(member.id, court_1.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.create_booking(member.id, court_2.id, at(TOMORROW, 12), at(TOMORROW, 13))

    with pytest.raises(DailyLimitExceeded) as excinfo:
        admission.create_booking(member.id, court_1.id, at(TOMORROW, 14), at(TOMORROW, 15))
    assert excinfo.value.details["max_bookings_per_day"] == 2

    # another day has its own allowance
    admission.create_booking(member.id, court_1.id, at(date(2030, 1, 12), 14), at(date(2030, 1, 12), 15))


def test_cancelled_bookings_do_not_count_towards_daily_limit(admission, member, facility):
    first = admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    admission.create_booking(member.id, facility.id, at(TOMORROW, 12), at(TOMORROW, 13))
    admission.cancel_booking(first.id, member.id)

    admission.create_booking(member.id, facility.id, at(TOMORROW, 14), at(TOMORROW, 15))


def test_advance_window_boundary(admission, member, facility):
    last_allowed = date(2030, 2, 9)  # 30 days after 2030-01-10
    admission.create_booking(member.id, facility.id, at(last_allowed, 10), at(last_allowed, 11))

    too_far = date(2030, 2, 10)
    with pytest.raises(AdvanceWindowExceeded) as excinfo:
        admission.create_booking(member.id, facility.id, at(too_far, 10), at(too_far, 11))
    assert excinfo.value.details["max_booking_days_ahead"] == 30


def test_rejection_leaves_no_row(admission, member, other_member, facility):
    admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    for attempt in (
        lambda: admission.create_booking(other_member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11)),
        lambda: admission.create_booking(other_member.id, facility.id, at(TOMORROW, 6), at(TOMORROW, 7)),
    ):
        with pytest.raises((BookingConflict, FacilityUnavailable)):
            attempt()
    assert booking_count() == 1


def test_lock_timeout_is_retried_then_reported(app, admission, member, facility):
    locks = app.extensions["admission_locks"]
    locks.timeout_seconds = 0.05

    with locks.hold(facility.id):
        with pytest.raises(TransientBookingFailure) as excinfo:
            admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    assert excinfo.value.status_code == 503
    assert booking_count() == 0

    # the facility is usable again once the holder leaves
    booking = admission.create_booking(member.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
    assert booking.status == "confirmed"


def test_seven_day_window(make_user, make_membership, make_membership_type, facility):
    user = make_user()
    make_membership(
        user,
        make_membership_type(max_booking_days_ahead=7),
        start_date=date(2030, 1, 1),
        end_date=date(2030, 12, 31),
    )
    admission = build_admission(clock=lambda: NOW)

    week_out = NOW.date() + timedelta(days=7)
    admission.create_booking(user.id, facility.id, at(week_out, 10), at(week_out, 11))

    eight_days = NOW.date() + timedelta(days=8)
    with pytest.raises(AdvanceWindowExceeded):
        admission.create_booking(user.id, facility.id, at(eight_days, 10), at(eight_days, 11))


def test_retired_plan_grants_nothing(admission, make_user, make_membership, make_membership_type, facility):
    user = make_user()
    make_membership(
        user,
        make_membership_type(is_active=False),
        start_date=date(2030, 1, 1),
        end_date=date(2030, 12, 31),
    )
    with pytest.raises(MembershipRequired):
        admission.create_booking(user.id, facility.id, at(TOMORROW, 10), at(TOMORROW, 11))
