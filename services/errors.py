class BookingError(Exception):
    """Base class for every rule the booking core can reject a request with."""

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(BookingError):
    code = "validation_error"
    status_code = 400


class FacilityNotFound(BookingError):
    code = "facility_not_found"
    status_code = 404


class FacilityUnavailable(BookingError):
    code = "facility_unavailable"
    status_code = 400


class MembershipRequired(BookingError):
    code = "membership_required"
    status_code = 403


class EntitlementDenied(BookingError):
    code = "entitlement_denied"
    status_code = 403


class DailyLimitExceeded(BookingError):
    code = "daily_limit_exceeded"
    status_code = 403


class AdvanceWindowExceeded(BookingError):
    code = "advance_window_exceeded"
    status_code = 400


class BookingConflict(BookingError):
    code = "conflict"
    status_code = 409


class NotFoundOrNotCancellable(BookingError):
    code = "not_found_or_not_cancellable"
    status_code = 404

    def __init__(self, message: str = "Booking not found or cannot be cancelled."):
        super().__init__(message)


class BookingNotFound(BookingError):
    code = "booking_not_found"
    status_code = 404


class InvalidStatusTransition(BookingError):
    code = "invalid_status_transition"
    status_code = 409


class TransientBookingFailure(BookingError):
    code = "transient_failure"
    status_code = 503


class SlotConfigurationError(BookingError):
    code = "slot_configuration_error"
    status_code = 500


class LockTimeout(Exception):
    """The per-facility exclusive region could not be entered in time."""
