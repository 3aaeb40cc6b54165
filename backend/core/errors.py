"""Error types shared by the booking lifecycle components.

Every error carries a stable ``code`` that API views return verbatim in the
``error`` field of a 4xx/5xx payload.
"""

from __future__ import annotations


class BookingCoreError(Exception):
    """Base class for errors raised by the booking lifecycle core."""

    code = "BookingCoreError"
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def detail(self) -> str:
        return str(self)


# --- validation: the request itself is wrong; never retried ---


class BookingValidationError(BookingCoreError):
    code = "ValidationError"


class InvalidDateRange(BookingValidationError):
    code = "InvalidDateRange"
    default_message = "Check-out must be after check-in."


class StayLengthInvalid(BookingValidationError):
    code = "StayLengthInvalid"
    default_message = "The number of nights is outside the listing's allowed stay."


class CapacityExceeded(BookingValidationError):
    code = "CapacityExceeded"
    default_message = "Too many guests for this listing."


# --- conflicts: the state changed under the caller; re-query and retry ---


class BookingConflict(BookingCoreError):
    code = "Conflict"


class DatesUnavailable(BookingConflict):
    code = "DatesUnavailable"
    default_message = "These dates are not available."


class IllegalTransition(BookingConflict):
    code = "IllegalTransition"
    default_message = "This booking cannot move to the requested status."

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from {current} to {target}.")


class BookingAlreadyStarted(BookingConflict):
    code = "BookingAlreadyStarted"
    default_message = "The stay has already started and can no longer be cancelled."


class PromoCodeUnavailable(BookingConflict):
    code = "PromoCodeUnavailable"
    default_message = "This promo code can no longer be applied."


# --- lookups ---


class NotFound(BookingCoreError):
    code = "NotFound"


class ListingNotFound(NotFound):
    code = "ListingNotFound"
    default_message = "Listing not found."


class BookingNotFound(NotFound):
    code = "BookingNotFound"
    default_message = "Booking not found."


# --- payment reconciliation: logged and absorbed by webhook handlers ---


class ReconciliationError(BookingCoreError):
    code = "ReconciliationError"


class PaymentNotFound(ReconciliationError):
    code = "PaymentNotFound"
    default_message = "No payment matches this provider event."


class InvalidRefundState(ReconciliationError):
    code = "InvalidRefundState"
    default_message = "Only completed payments can be refunded."


class StalePaymentEvent(ReconciliationError):
    code = "StalePaymentEvent"
    default_message = "The payment has already moved past this event."


class DuplicateCapture(ReconciliationError):
    code = "DuplicateCapture"
    default_message = "The booking already has a completed payment."


# --- infrastructure ---


class ServiceUnavailable(BookingCoreError):
    """Persistence kept failing after the retry budget was spent."""

    code = "ServiceUnavailable"
    default_message = "The service is temporarily unavailable, please retry."
