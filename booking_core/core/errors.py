"""Error taxonomy shared by every scheduling operation.

Each error carries a stable ``code`` (used by API clients to branch) and a
human-readable ``reason`` that can be shown in a UI as-is.
"""


class BookingError(Exception):
    code = "BookingError"
    status_code = 400

    def __init__(self, reason: str, **details):
        super().__init__(reason)
        self.reason = reason
        self.details = details

    def to_dict(self) -> dict:
        out = {"code": self.code, "reason": self.reason}
        if self.details:
            out["details"] = self.details
        return out


class InvalidTimeWindow(BookingError):
    code = "InvalidTimeWindow"


class InvalidRequest(BookingError):
    code = "InvalidRequest"


class OutsideWorkingHours(BookingError):
    code = "OutsideWorkingHours"
    status_code = 409


class SlotConflict(BookingError):
    code = "SlotConflict"
    status_code = 409


class NoProviderAvailable(BookingError):
    code = "NoProviderAvailable"
    status_code = 409


class NoSlotForNewWindow(BookingError):
    code = "NoSlotForNewWindow"
    status_code = 409


class AlreadyTerminal(BookingError):
    code = "AlreadyTerminal"
    status_code = 409


class AlreadyAssigned(BookingError):
    code = "AlreadyAssigned"


class RescheduleNotAllowed(BookingError):
    code = "RescheduleNotAllowed"


class ConcurrentUpdate(BookingError):
    code = "ConcurrentUpdate"
    status_code = 409


class NotAuthorized(BookingError):
    code = "NotAuthorized"
    status_code = 403


class NotFound(BookingError):
    code = "NotFound"
    status_code = 404

    @classmethod
    def of(cls, kind: str, ident=None) -> "NotFound":
        if ident is None:
            return cls(f"{kind} not found")
        return cls(f"{kind} not found", id=str(ident))
