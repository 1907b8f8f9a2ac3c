"""
Error kinds raised by the services and their HTTP mapping.

Services raise ``DriveError`` carrying an ``ErrorKind``. Translating a kind
into a status code and a client-facing message is done by the two pure
functions below; the exception handlers in ``app.api.errors`` only glue them to
the response envelope.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    BAD_REQUEST = "BAD_REQUEST"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    INCORRECT_PASSWORD = "INCORRECT_PASSWORD"
    FORBIDDEN_CONTENT = "FORBIDDEN_CONTENT"
    INVALID_EXTERNAL_TOKEN = "INVALID_EXTERNAL_TOKEN"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"

    UNAUTHORIZED = "UNAUTHORIZED"
    BAD_CREDENTIALS = "BAD_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    TOKEN_UNSUPPORTED = "TOKEN_UNSUPPORTED"

    NOT_FOUND = "NOT_FOUND"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"

    FILE_STORAGE_ERROR = "FILE_STORAGE_ERROR"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    INTERNAL = "INTERNAL"


_STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.EMAIL_IN_USE: 400,
    ErrorKind.INCORRECT_PASSWORD: 400,
    ErrorKind.FORBIDDEN_CONTENT: 400,
    ErrorKind.INVALID_EXTERNAL_TOKEN: 400,
    ErrorKind.INVALID_RESET_TOKEN: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.BAD_CREDENTIALS: 401,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_MALFORMED: 401,
    ErrorKind.TOKEN_UNSUPPORTED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.FILE_STORAGE_ERROR: 500,
    ErrorKind.EMAIL_DELIVERY_FAILED: 500,
    ErrorKind.INTERNAL: 500,
}

_GENERIC_MESSAGES = {
    ErrorKind.FILE_STORAGE_ERROR: "File storage error",
    ErrorKind.EMAIL_DELIVERY_FAILED: "Failed to send email",
    ErrorKind.INTERNAL: "An unexpected error occurred",
}


def status_for(kind: ErrorKind) -> int:
    """HTTP status code for an error kind"""
    return _STATUS_BY_KIND[kind]


def public_message(kind: ErrorKind, message: str) -> str:
    """Message safe to show a client; server-side failures get a generic text"""
    return _GENERIC_MESSAGES.get(kind, message)


class DriveError(Exception):
    """Business or infrastructure failure tagged with an ErrorKind"""

    def __init__(self, kind: ErrorKind, message: str, errors: Optional[dict] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors

    @property
    def status_code(self) -> int:
        return status_for(self.kind)


class TokenError(DriveError):
    """Session token could not be verified"""


class FileStorageError(DriveError):
    """Object store call failed; keeps the remote status and a body excerpt for the log"""

    def __init__(self, message: str, http_status: Optional[int] = None, body_excerpt: str = ""):
        super().__init__(ErrorKind.FILE_STORAGE_ERROR, message)
        self.http_status = http_status
        self.body_excerpt = body_excerpt

    def __str__(self) -> str:
        if self.http_status is None:
            return self.message
        return f"{self.message} (status {self.http_status}: {self.body_excerpt})"


class EmailDeliveryError(DriveError):
    def __init__(self, message: str):
        super().__init__(ErrorKind.EMAIL_DELIVERY_FAILED, message)
