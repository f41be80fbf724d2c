"""Error taxonomy shared by services and routers.

Services raise these; the handlers registered in ``mediatrack.main`` turn
them into ``{"error": {"code": ..., "message": ...}}`` responses.
"""

from enum import Enum


class ErrorCode(str, Enum):
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CONFLICT = "E_CONFLICT"
    E_UPSTREAM = "E_UPSTREAM"
    E_PERSISTENCE = "E_PERSISTENCE"
    E_INTERNAL = "E_INTERNAL"


ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.E_INVALID_REQUEST: 400,
    ErrorCode.E_UNAUTHENTICATED: 401,
    ErrorCode.E_NOT_FOUND: 404,
    ErrorCode.E_CONFLICT: 409,
    ErrorCode.E_UPSTREAM: 502,
    ErrorCode.E_PERSISTENCE: 500,
    ErrorCode.E_INTERNAL: 500,
}


class TrackerError(Exception):
    """Base exception for errors surfaced to API callers.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    code: ErrorCode = ErrorCode.E_INTERNAL
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        self.status_code = ERROR_CODE_TO_STATUS.get(self.code, 500)
        super().__init__(self.message)


class ValidationError(TrackerError):
    """Malformed or out-of-range input."""

    code = ErrorCode.E_INVALID_REQUEST
    default_message = "Invalid request"


class UnauthorizedError(TrackerError):
    code = ErrorCode.E_UNAUTHENTICATED
    default_message = "Could not validate credentials"


class NotFoundError(TrackerError):
    code = ErrorCode.E_NOT_FOUND
    default_message = "Not found"


class ConflictError(TrackerError):
    code = ErrorCode.E_CONFLICT
    default_message = "Already exists"


class UpstreamError(TrackerError):
    """The catalog (or email) service failed or answered with a non-2xx status."""

    code = ErrorCode.E_UPSTREAM
    default_message = "Upstream service failed"

    def __init__(self, message: str | None = None, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(message)


class PersistenceError(TrackerError):
    code = ErrorCode.E_PERSISTENCE
    default_message = "Storage failure"
