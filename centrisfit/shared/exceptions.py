"""Business rule errors raised by the service layer.

Every error is an ``HTTPException`` so services can raise them directly and the
API boundary renders them as 4xx responses. ``code`` is a stable identifier
clients can switch on without parsing ``detail``.
"""

from fastapi import HTTPException


class DomainError(HTTPException):
    status_code = 400
    code = "DOMAIN_ERROR"
    message = "Request rejected"

    def __init__(self, detail: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.message)


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class ConflictError(DomainError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflict"


# Slots and bookings


class SlotNotFound(NotFoundError):
    code = "SLOT_NOT_FOUND"
    message = "Slot not found"


class SlotNotAvailable(ConflictError):
    code = "SLOT_NOT_AVAILABLE"
    message = "Slot is not available for booking"


class CapacityExceeded(ConflictError):
    code = "CAPACITY_EXCEEDED"
    message = "All places are taken"


class DuplicateBooking(ConflictError):
    code = "DUPLICATE_BOOKING"
    message = "You are already booked for this time"


class BookingNotFound(NotFoundError):
    code = "BOOKING_NOT_FOUND"
    message = "Booking not found"


class NotCancellable(ConflictError):
    code = "NOT_CANCELLABLE"
    message = "This booking cannot be cancelled"


class InvalidStatusTransition(ConflictError):
    code = "INVALID_STATUS_TRANSITION"
    message = "Status change is not allowed"


class InvalidCapacity(ConflictError):
    code = "INVALID_CAPACITY"
    message = "Capacity cannot be lower than the number of booked places"


class SlotHasBookings(ConflictError):
    code = "SLOT_HAS_BOOKINGS"
    message = "Slot has active bookings"


class FeedbackNotAllowed(DomainError):
    code = "FEEDBACK_NOT_ALLOWED"
    message = "Feedback can only be left after a completed session"


class FeedbackAlreadyExists(ConflictError):
    code = "FEEDBACK_ALREADY_EXISTS"
    message = "Feedback for this session has already been left"


# Catalog


class ServiceNotFound(NotFoundError):
    code = "SERVICE_NOT_FOUND"
    message = "Service not found"


# Memberships


class PlanNotFound(NotFoundError):
    code = "PLAN_NOT_FOUND"
    message = "Membership plan not found"


class PlanInactive(DomainError):
    code = "PLAN_INACTIVE"
    message = "Membership plan is not available for purchase"


class PlanInUse(ConflictError):
    code = "PLAN_IN_USE"
    message = "Membership plan is already used by memberships"


class AlreadyHasMembership(ConflictError):
    code = "ALREADY_HAS_MEMBERSHIP"
    message = "User already has an active membership"


class MembershipNotFound(NotFoundError):
    code = "MEMBERSHIP_NOT_FOUND"
    message = "Membership not found"


class NotActive(ConflictError):
    code = "NOT_ACTIVE"
    message = "Membership is not active"


class NotFrozen(ConflictError):
    code = "NOT_FROZEN"
    message = "Membership is not frozen"


class FreezeLimitExceeded(ConflictError):
    code = "FREEZE_LIMIT_EXCEEDED"
    message = "Freeze limit is exhausted"


class NoOpenFreeze(ConflictError):
    code = "NO_OPEN_FREEZE"
    message = "No open freeze found"


class NoVisitsRemaining(ConflictError):
    code = "NO_VISITS_REMAINING"
    message = "No visits remaining"


# Clients


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"
    message = "User not found"


class InvalidPhone(DomainError):
    status_code = 422
    code = "INVALID_PHONE"
    message = "Invalid phone number"


class PhoneAlreadyUsed(ConflictError):
    code = "PHONE_ALREADY_USED"
    message = "Phone number is already used by another client"
