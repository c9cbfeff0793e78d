"""Bookable slot partition of a facility's operating day."""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Sequence

from models.booking import CALENDAR_BLOCKING_STATUSES
from services.errors import FacilityNotFound, SlotConfigurationError
from services.intervals import Interval, find_overlapping
from services.repositories import BookingRepository, FacilityCatalog


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool

    def to_dict(self) -> dict:
        return {
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "available": self.available,
        }


@dataclass
class DayAvailability:
    facility_id: int
    date: date
    duration_minutes: int
    buffer_minutes: int
    hours_start: time
    hours_end: time
    slots: List[Slot] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "facility": {
                "id": self.facility_id,
                "duration_minutes": self.duration_minutes,
                "buffer_minutes": self.buffer_minutes,
                "hours_start": self.hours_start.strftime("%H:%M"),
                "hours_end": self.hours_end.strftime("%H:%M"),
            },
            "date": self.date.isoformat(),
            "slots": [s.to_dict() for s in self.slots],
        }


class SlotAvailability:
    """
    Advisory view for display only; admission re-validates every request.
    Each call reads current bookings, nothing is cached between calls.
    """

    def __init__(self, facilities: FacilityCatalog, bookings: BookingRepository, tz=timezone.utc):
        self.facilities = facilities
        self.bookings = bookings
        self.tz = tz

    def get_available_slots(self, facility_id, day: date) -> DayAvailability:
        facility = self.facilities.get_facility(facility_id)
        if facility is None:
            raise FacilityNotFound("Facility not found.")

        day_start = datetime.combine(day, time.min, tzinfo=self.tz)
        day_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        rows = self.bookings.list_for_facility_starting_between(
            facility.id, day_start, day_end, CALENDAR_BLOCKING_STATUSES
        )
        booked = [Interval(b.start_time, b.end_time) for b in rows]

        return DayAvailability(
            facility_id=facility.id,
            date=day,
            duration_minutes=facility.booking_duration_minutes,
            buffer_minutes=facility.booking_buffer_minutes,
            hours_start=facility.operating_hours_start,
            hours_end=facility.operating_hours_end,
            slots=list(self.iter_slots(facility, day, booked)),
        )

    def iter_slots(self, facility, day: date, booked: Sequence[Interval]) -> Iterator[Slot]:
        duration = facility.booking_duration_minutes or 0
        buffer = facility.booking_buffer_minutes or 0
        if duration <= 0:
            raise SlotConfigurationError(
                f"Facility {facility.id} has a non-positive booking duration ({duration})."
            )
        if buffer < 0:
            raise SlotConfigurationError(
                f"Facility {facility.id} has a negative booking buffer ({buffer})."
            )
        return self._walk(
            datetime.combine(day, facility.operating_hours_start, tzinfo=self.tz),
            datetime.combine(day, facility.operating_hours_end, tzinfo=self.tz),
            timedelta(minutes=duration),
            timedelta(minutes=buffer),
            booked,
        )

    @staticmethod
    def _walk(day_start, day_end, duration, buffer, booked) -> Iterator[Slot]:
        cursor = day_start
        while cursor + duration <= day_end:
            slot = Interval(cursor, cursor + duration)
            yield Slot(slot.start, slot.end, find_overlapping(slot, booked) is None)
            cursor = slot.end + buffer
