# Domain error taxonomy.
# Services raise these; routes turn them into HTTP responses with exc.to_http().
# Every error carries at least one forward action so the client never renders a dead end.
from __future__ import annotations

import enum
from typing import Optional, Sequence

from fastapi import HTTPException, status


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    FATAL_PERSISTENCE = "fatal_persistence"
    BEST_EFFORT_PERSISTENCE = "best_effort_persistence"
    PROCESSOR = "processor"


class ForwardAction(str, enum.Enum):
    RETRY = "retry"
    VIEW_BOOKINGS = "view_bookings"
    CONTACT_SUPPORT = "contact_support"
    SIGN_IN = "sign_in"


class BoardingHouseError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_actions: Sequence[ForwardAction] = (ForwardAction.RETRY,)

    def __init__(
        self,
        message: str,
        *,
        actions: Optional[Sequence[ForwardAction]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.actions = tuple(actions or self.default_actions)
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "actions": [a.value for a in self.actions],
        }

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class InvalidInputError(BoardingHouseError):
    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(BoardingHouseError):
    kind = ErrorKind.AUTHORIZATION
    status_code = status.HTTP_403_FORBIDDEN
    default_actions = (ForwardAction.SIGN_IN,)


class BookingNotFoundError(AuthorizationError):
    """Missing and foreign bookings are indistinguishable to the caller."""
    status_code = status.HTTP_404_NOT_FOUND
    default_actions = (ForwardAction.VIEW_BOOKINGS,)

    def __init__(self, message: str = "Booking not found", **kwargs) -> None:
        super().__init__(message, **kwargs)


class InvalidTransitionError(BoardingHouseError):
    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_409_CONFLICT
    default_actions = (ForwardAction.VIEW_BOOKINGS,)


class FatalPersistenceError(BoardingHouseError):
    kind = ErrorKind.FATAL_PERSISTENCE
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    # The charge may already be taken; never invite a blind retry
    default_actions = (ForwardAction.VIEW_BOOKINGS, ForwardAction.CONTACT_SUPPORT)


class TenantCreationError(FatalPersistenceError):
    def __init__(self, message: str = "Tenant creation failed", **kwargs) -> None:
        super().__init__(message, **kwargs)


class PaymentRecordError(FatalPersistenceError):
    def __init__(
        self,
        message: str = (
            "Your payment may have gone through, but we could not save the payment record. "
            "Please do not pay again; check your bookings or contact support."
        ),
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)


class BestEffortPersistenceError(BoardingHouseError):
    """Recorded in reconciliation reports; never surfaced as an HTTP error."""
    kind = ErrorKind.BEST_EFFORT_PERSISTENCE
    status_code = status.HTTP_200_OK
    default_actions = (ForwardAction.VIEW_BOOKINGS,)


class ProcessorError(BoardingHouseError):
    kind = ErrorKind.PROCESSOR
    status_code = status.HTTP_502_BAD_GATEWAY
    default_actions = (ForwardAction.RETRY, ForwardAction.VIEW_BOOKINGS)
