"""Error taxonomy shared by the service and the scanner client.

Each error carries a human readable message, the HTTP status it maps to, a
stable machine code and structured detail the client can act on without
re-querying.
"""
from typing import Any, Dict, Optional, Type


class InboundError(Exception):
    """Base class for all scan protocol errors."""
    status_code = 400
    code = "INBOUND_ERROR"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.detail}


# Validation

class ValidationError(InboundError):
    status_code = 400
    code = "VALIDATION_ERROR"


# Not found

class NotFoundError(InboundError):
    status_code = 404
    code = "NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: int):
        super().__init__("Session not found.", sessionId=session_id)


# Ownership

class OwnershipError(InboundError):
    status_code = 403
    code = "OWNERSHIP_ERROR"


class LockedByOtherError(OwnershipError):
    code = "LOCKED_BY_OTHER"

    def __init__(self, locked_by: str):
        super().__init__(f'InnerBox is in progress by "{locked_by}".', lockedBy=locked_by)
        self.locked_by = locked_by


class NotOwnerError(OwnershipError):
    code = "NOT_OWNER"

    def __init__(self, locked_by: str):
        super().__init__("InnerBox is locked by another user.", lockedBy=locked_by)
        self.locked_by = locked_by


class NotAllowedError(OwnershipError):
    code = "NOT_ALLOWED"


# State

class StateError(InboundError):
    status_code = 409
    code = "STATE_ERROR"


class AlreadyCompletedError(StateError):
    code = "ALREADY_CONFIRMED"

    def __init__(self, inner_box_id: str):
        super().__init__(
            f'InnerBox "{inner_box_id}" is already CONFIRMED.', innerBoxId=inner_box_id
        )


class NotInProgressError(StateError):
    code = "NOT_IN_PROGRESS"

    def __init__(self, status: str):
        super().__init__("Session is not IN_PROGRESS.", status=status)


class MisconfiguredError(StateError):
    status_code = 400
    code = "EXPECTED_QTY_NOT_SET"


class BatchLockedError(StateError):
    code = "BATCH_LOCKED"


class ScanLockedError(StateError):
    code = "SCAN_LOCKED"


# Conflicts

class ConflictError(InboundError):
    status_code = 409
    code = "CONFLICT"


class SkuMismatchError(ConflictError):
    code = "SKU_MISMATCH"

    def __init__(self, locked_sku: str, offered_sku: str):
        super().__init__(
            f"SKU mismatch. Locked SKU is {locked_sku}. You scanned {offered_sku}",
            lockedSku=locked_sku,
            offeredSku=offered_sku,
        )
        self.locked_sku = locked_sku
        self.offered_sku = offered_sku


class DuplicateSerialError(ConflictError):
    code = "DUPLICATE_SERIAL"

    def __init__(self, serial_number: str, message: Optional[str] = None):
        super().__init__(
            message or f"Serial number {serial_number} already exists.",
            serialNumber=serial_number,
        )
        self.serial_number = serial_number


class QuantityMismatchError(ConflictError):
    code = "QUANTITY_MISMATCH"

    def __init__(self, scanned: int, expected: int):
        super().__init__(
            f"Quantity mismatch: scanned {scanned} of {expected}",
            scanned=scanned,
            expected=expected,
        )
        self.scanned = scanned
        self.expected = expected


def _all_subclasses(cls: Type[InboundError]):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)


ERRORS_BY_CODE: Dict[str, Type[InboundError]] = {
    cls.code: cls for cls in [InboundError, *_all_subclasses(InboundError)]
}


def error_from_payload(status_code: int, payload: Dict[str, Any]) -> InboundError:
    """Rebuild the error a service response describes.

    Used by the HTTP client so callers catch the same classes the service
    raised. Unknown codes fall back to the family matching the status.
    """
    payload = dict(payload or {})
    message = str(payload.pop("detail", "") or "Request failed")
    code = payload.pop("code", None)
    cls = ERRORS_BY_CODE.get(code) if code else None
    if cls is None:
        cls = {
            400: ValidationError,
            403: OwnershipError,
            404: NotFoundError,
            409: ConflictError,
            422: ValidationError,
        }.get(status_code, InboundError)
    # Bypass the per-class constructors; they take typed args, not messages
    error = cls.__new__(cls)
    InboundError.__init__(error, message, **payload)
    if cls is LockedByOtherError or cls is NotOwnerError:
        error.locked_by = payload.get("lockedBy", "")
    elif cls is SkuMismatchError:
        error.locked_sku = payload.get("lockedSku", "")
        error.offered_sku = payload.get("offeredSku", "")
    elif cls is DuplicateSerialError:
        error.serial_number = payload.get("serialNumber", "")
    elif cls is QuantityMismatchError:
        error.scanned = payload.get("scanned")
        error.expected = payload.get("expected")
    return error
