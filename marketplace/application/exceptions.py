
class MarketplaceError(Exception):
    """Base class for every error raised by the scheduling and commerce core."""
    code = "marketplace_error"

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.context = context


class InvalidRangeError(MarketplaceError, ValueError):
    """Raised when a time range is malformed or not strictly ordered (start < end)."""
    code = "invalid_range"


class InvalidScheduleError(MarketplaceError, ValueError):
    """Raised when a schedule, template or materialization request is malformed."""
    code = "invalid_schedule"


class SlotNotFoundError(MarketplaceError, LookupError):
    """Raised when a slot id does not resolve to a stored slot."""
    code = "slot_not_found"


class SlotUnavailableError(MarketplaceError):
    """Raised when a slot cannot be booked (booked, full, inactive, past, or contended)."""
    code = "slot_unavailable"

    def __init__(self, message: str = "", reason: str = "unavailable", **context: object) -> None:
        super().__init__(message, **context)
        self.reason = reason


class SlotConflictError(MarketplaceError):
    """Raised when slots cannot be replaced or removed because they carry live bookings."""
    code = "slot_conflict"


class BookingNotFoundError(MarketplaceError, LookupError):
    """Raised when a booking id does not resolve to a stored booking."""
    code = "booking_not_found"


class InvalidTransitionError(MarketplaceError):
    """Raised when a booking transition is not allowed from its current status."""
    code = "invalid_transition"


class BookingRuleViolationError(MarketplaceError):
    """Raised when a request breaks the specialist's booking rules (notice, horizon, deadline)."""
    code = "booking_rule_violation"


class DuplicateEnrollmentError(MarketplaceError):
    """Raised when the customer already holds a completed payment or a live booking for the target."""
    code = "duplicate_enrollment"


class OfferingNotFoundError(MarketplaceError, LookupError):
    """Raised when an offering id is unknown to the catalog."""
    code = "offering_not_found"


class PaymentNotFoundError(MarketplaceError, LookupError):
    """Raised when a payment id does not resolve to a stored payment."""
    code = "payment_not_found"


class PaymentStateError(MarketplaceError):
    """Raised when a payment is not in a status that permits the requested operation."""
    code = "payment_state"


class RefundNotAllowedError(MarketplaceError, PermissionError):
    """Raised when someone other than the owning specialist requests a refund."""
    code = "refund_not_allowed"


class DuplicateIdempotencyKeyError(MarketplaceError):
    """Raised by payment stores when an idempotency key is already taken."""
    code = "duplicate_idempotency_key"


class GatewayError(MarketplaceError):
    """Raised when the payment gateway fails (network errors, declines, bad responses)."""
    code = "gateway_error"


class MeetingProviderError(MarketplaceError):
    """Raised when the meeting provider fails or times out."""
    code = "meeting_provider_error"


class InvalidCommissionError(MarketplaceError, ValueError):
    """Raised when a commission rate or amount is out of range."""
    code = "invalid_commission"


class PaymentAccessDeniedError(MarketplaceError, PermissionError):
    """Raised when a customer asks about a payment that is not theirs."""
    code = "payment_access_denied"


class BookingMismatchError(MarketplaceError, ValueError):
    """Raised when a payment names a booking held by another customer or for another offering."""
    code = "booking_mismatch"
