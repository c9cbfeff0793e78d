"""
Read/write seams of the booking core.

The abstract classes describe what the admission controller and the slot
generator need from storage; the Sql* classes implement them on top of a
SQLAlchemy session that the caller passes in (one per request).
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from models.booking import Booking, STATUS_CANCELLED
from models.facility import Facility
from models.membership import Membership, MembershipType
from models.user import User
from models.types import utcnow
from services.errors import LockTimeout
from services.locks import AdmissionLockRegistry

# Failures worth one more attempt: lock waits, serialization failures,
# SQLite "database is locked".
TRANSIENT_ERRORS = (OperationalError, LockTimeout)


@dataclass(frozen=True)
class ActiveMembership:
    membership_id: int
    membership_type_name: str
    facilities_access: frozenset
    max_bookings_per_day: int
    max_booking_days_ahead: int
    end_date: date

    def allows(self, facility_type: str) -> bool:
        return facility_type in self.facilities_access


class FacilityCatalog(ABC):
    @abstractmethod
    def get_facility(self, facility_id) -> Optional[Facility]:
        ...


class MembershipDirectory(ABC):
    @abstractmethod
    def get_active_membership(self, user_id, today: date) -> Optional[ActiveMembership]:
        ...


class BookingRepository(ABC):
    @abstractmethod
    def exclusive_member(self, user_id):
        """Context manager: no other admission for this member runs inside it."""

    @abstractmethod
    def exclusive_facility(self, facility_id):
        """Context manager: no other admission for this facility runs inside it."""

    @abstractmethod
    def list_for_facility_with_lock(self, facility_id, statuses: Sequence[str],
                                    ends_after: Optional[datetime] = None) -> List[Booking]:
        ...

    @abstractmethod
    def list_for_facility_starting_between(self, facility_id, start: datetime, end: datetime,
                                           statuses: Sequence[str]) -> List[Booking]:
        ...

    @abstractmethod
    def count_for_user_starting_between(self, user_id, start: datetime, end: datetime,
                                        statuses: Sequence[str]) -> int:
        ...

    @abstractmethod
    def get(self, booking_id, for_update: bool = False) -> Optional[Booking]:
        ...

    @abstractmethod
    def insert(self, booking: Booking) -> Booking:
        ...

    @abstractmethod
    def cancel_where(self, booking_id, statuses: Sequence[str], user_id=None) -> Optional[Booking]:
        ...

    @abstractmethod
    def update_status(self, booking: Booking, status: str) -> Booking:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


class SqlFacilityCatalog(FacilityCatalog):
    def __init__(self, session):
        self.session = session

    def get_facility(self, facility_id):
        return self.session.get(Facility, facility_id)


class SqlMembershipDirectory(MembershipDirectory):
    def __init__(self, session):
        self.session = session

    def get_active_membership(self, user_id, today):
        # Several active memberships may exist; the newest one (created_at, then id) is used.
        # Memberships on a retired plan (is_active false) grant nothing.
        row = (
            self.session.query(Membership, MembershipType)
            .join(MembershipType, Membership.membership_type_id == MembershipType.id)
            .filter(
                Membership.user_id == user_id,
                Membership.status == "active",
                Membership.end_date >= today,
                MembershipType.is_active.is_(True),
            )
            .order_by(Membership.created_at.desc(), Membership.id.desc())
            .first()
        )
        if row is None:
            return None

        membership, mtype = row
        return ActiveMembership(
            membership_id=membership.id,
            membership_type_name=mtype.name,
            facilities_access=frozenset(mtype.facilities_access or ()),
            max_bookings_per_day=mtype.max_bookings_per_day,
            max_booking_days_ahead=mtype.max_booking_days_ahead,
            end_date=membership.end_date,
        )


class SqlBookingRepository(BookingRepository):
    def __init__(self, session, locks: AdmissionLockRegistry):
        self.session = session
        self.locks = locks

    def _dialect(self) -> str:
        return self.session.get_bind().dialect.name

    def _set_lock_timeout(self):
        if self._dialect() == "postgresql":
            timeout_ms = int(self.locks.timeout_seconds * 1000)
            self.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    @contextmanager
    def exclusive_member(self, user_id):
        # Taken before exclusive_facility, never after it.
        with self.locks.hold_member(user_id):
            self._set_lock_timeout()
            (
                self.session.query(User.id)
                .filter(User.id == user_id)
                .with_for_update()
                .one_or_none()
            )
            yield

    @contextmanager
    def exclusive_facility(self, facility_id):
        # In-process mutex first, then the facility row lock so that other
        # worker processes sharing the database queue behind us too.
        with self.locks.hold(facility_id):
            self._set_lock_timeout()
            (
                self.session.query(Facility.id)
                .filter(Facility.id == facility_id)
                .with_for_update()
                .one_or_none()
            )
            yield

    def list_for_facility_with_lock(self, facility_id, statuses, ends_after=None):
        q = self.session.query(Booking).filter(
            Booking.facility_id == facility_id,
            Booking.status.in_(tuple(statuses)),
        )
        if ends_after is not None:
            q = q.filter(Booking.end_time > ends_after)
        return q.order_by(Booking.start_time.asc()).with_for_update().all()

    def list_for_facility_starting_between(self, facility_id, start, end, statuses):
        return (
            self.session.query(Booking)
            .filter(
                Booking.facility_id == facility_id,
                Booking.status.in_(tuple(statuses)),
                Booking.start_time >= start,
                Booking.start_time < end,
            )
            .order_by(Booking.start_time.asc())
            .all()
        )

    def count_for_user_starting_between(self, user_id, start, end, statuses):
        return (
            self.session.query(Booking)
            .filter(
                Booking.user_id == user_id,
                Booking.status.in_(tuple(statuses)),
                Booking.start_time >= start,
                Booking.start_time < end,
            )
            .count()
        )

    def get(self, booking_id, for_update=False):
        if for_update:
            return (
                self.session.query(Booking)
                .filter(Booking.id == booking_id)
                .with_for_update()
                .one_or_none()
            )
        return self.session.get(Booking, booking_id)

    def insert(self, booking):
        self.session.add(booking)
        self.session.flush()
        return booking

    def cancel_where(self, booking_id, statuses, user_id=None):
        # Single conditional UPDATE: two concurrent cancels cannot both match.
        q = self.session.query(Booking).filter(
            Booking.id == booking_id,
            Booking.status.in_(tuple(statuses)),
        )
        if user_id is not None:
            q = q.filter(Booking.user_id == user_id)

        updated = q.update(
            {Booking.status: STATUS_CANCELLED, Booking.updated_at: utcnow()},
            synchronize_session=False,
        )
        if not updated:
            return None
        return self.session.get(Booking, booking_id, populate_existing=True)

    def update_status(self, booking, status):
        booking.status = status
        self.session.flush()
        return booking

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
