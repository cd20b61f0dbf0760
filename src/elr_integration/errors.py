"""Error taxonomy for the ELR receiver.

Every exception raised on the mapping path carries an ``ErrorKind`` so the
receiver boundary can turn it into a typed result (and the caller into an
HL7 acknowledgment) without inspecting exception types.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Outcome of processing one inbound message."""

    NOERROR = "NOERROR"
    UNSUPPORTED = "UNSUPPORTED"
    MALFORMED = "MALFORMED"
    MSH = "MSH"
    PID = "PID"
    ORDER_OBSERVATION = "ORDER_OBSERVATION"
    LAB_RESULTS = "LAB_RESULTS"
    INTERNAL = "INTERNAL"


class ElrError(Exception):
    """Base class for expected, classified failures."""

    kind: ErrorKind = ErrorKind.INTERNAL


class MalformedMessageError(ElrError):
    """Raised when the inbound text cannot be tokenized as HL7 v2."""

    kind = ErrorKind.MALFORMED


class UnsupportedMessageError(ElrError):
    """Raised when the declared version or message type is not handled."""

    kind = ErrorKind.UNSUPPORTED


class MissingSendingContextError(ElrError):
    """Raised when MSH carries neither a sending application nor facility."""

    kind = ErrorKind.MSH


class MissingPatientIdentityError(ElrError):
    """Raised when no patient-result group yields an identifiable patient."""

    kind = ErrorKind.PID


class OrderMappingError(ElrError):
    """Raised for a structurally broken order group."""

    kind = ErrorKind.ORDER_OBSERVATION


class ResultMappingError(ElrError):
    """Raised for an observation that cannot be reported."""

    kind = ErrorKind.LAB_RESULTS


class DeliveryError(ElrError):
    """Raised by the forwarder after a failed POST has been queued for retry."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueueEmptyError(ElrError):
    """Raised when peeking or removing from an empty delivery queue."""
