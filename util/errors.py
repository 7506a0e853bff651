# util/errors.py
from typing import Optional
from util.enums import ErrorKind


class TrackerError(Exception):
    # Flow: the API client raises a typed error; pollers turn it into an event.
    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.TRANSIENT, ErrorKind.MALFORMED)


class UnauthorizedError(TrackerError):
    kind = ErrorKind.UNAUTHORIZED


class NotFoundError(TrackerError):
    kind = ErrorKind.NOT_FOUND


class TransientError(TrackerError):
    kind = ErrorKind.TRANSIENT


class MalformedResponseError(TrackerError):
    kind = ErrorKind.MALFORMED


class RejectedError(TrackerError):
    kind = ErrorKind.REJECTED
