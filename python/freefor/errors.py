"""API error definitions.

All API errors are defined here with their corresponding HTTP status codes.
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"
    E_NOT_RECIPIENT = "E_NOT_RECIPIENT"
    E_NOT_REQUESTER = "E_NOT_REQUESTER"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_ENTRY_NOT_FOUND = "E_ENTRY_NOT_FOUND"
    E_FRIENDSHIP_NOT_FOUND = "E_FRIENDSHIP_NOT_FOUND"
    E_CALENDAR_NOT_CONNECTED = "E_CALENDAR_NOT_CONNECTED"
    E_SUBSCRIPTION_NOT_FOUND = "E_SUBSCRIPTION_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_VALIDATION_FAILED = "E_VALIDATION_FAILED"
    E_INVALID_RANGE = "E_INVALID_RANGE"
    E_INVALID_RECURRENCE = "E_INVALID_RECURRENCE"
    E_INVALID_INSTANT = "E_INVALID_INSTANT"
    E_USERNAME_INVALID = "E_USERNAME_INVALID"
    E_SELF_FRIENDSHIP = "E_SELF_FRIENDSHIP"
    E_UNSUPPORTED_PROVIDER = "E_UNSUPPORTED_PROVIDER"
    E_TOO_MANY_USERS = "E_TOO_MANY_USERS"

    # Conflict errors (409)
    E_CONFLICT = "E_CONFLICT"
    E_USERNAME_TAKEN = "E_USERNAME_TAKEN"
    E_FRIENDSHIP_EXISTS = "E_FRIENDSHIP_EXISTS"
    E_FRIENDSHIP_NOT_PENDING = "E_FRIENDSHIP_NOT_PENDING"
    E_FRIENDSHIP_NOT_ACCEPTED = "E_FRIENDSHIP_NOT_ACCEPTED"
    E_FRIENDSHIP_NOT_DECLINED = "E_FRIENDSHIP_NOT_DECLINED"
    E_IMMUTABLE_SOURCE = "E_IMMUTABLE_SOURCE"
    E_CALENDAR_RECONNECT_REQUIRED = "E_CALENDAR_RECONNECT_REQUIRED"

    # Server errors
    E_UPSTREAM = "E_UPSTREAM"  # 502
    E_AUTH_UNAVAILABLE = "E_AUTH_UNAVAILABLE"  # 503
    E_INTERNAL = "E_INTERNAL"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_RECIPIENT: 403,
    ApiErrorCode.E_NOT_REQUESTER: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_ENTRY_NOT_FOUND: 404,
    ApiErrorCode.E_FRIENDSHIP_NOT_FOUND: 404,
    ApiErrorCode.E_CALENDAR_NOT_CONNECTED: 404,
    ApiErrorCode.E_SUBSCRIPTION_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_VALIDATION_FAILED: 400,
    ApiErrorCode.E_INVALID_RANGE: 400,
    ApiErrorCode.E_INVALID_RECURRENCE: 400,
    ApiErrorCode.E_INVALID_INSTANT: 400,
    ApiErrorCode.E_USERNAME_INVALID: 400,
    ApiErrorCode.E_SELF_FRIENDSHIP: 400,
    ApiErrorCode.E_UNSUPPORTED_PROVIDER: 400,
    ApiErrorCode.E_TOO_MANY_USERS: 400,
    ApiErrorCode.E_CONFLICT: 409,
    ApiErrorCode.E_USERNAME_TAKEN: 409,
    ApiErrorCode.E_FRIENDSHIP_EXISTS: 409,
    ApiErrorCode.E_FRIENDSHIP_NOT_PENDING: 409,
    ApiErrorCode.E_FRIENDSHIP_NOT_ACCEPTED: 409,
    ApiErrorCode.E_FRIENDSHIP_NOT_DECLINED: 409,
    ApiErrorCode.E_IMMUTABLE_SOURCE: 409,
    ApiErrorCode.E_CALENDAR_RECONNECT_REQUIRED: 409,
    ApiErrorCode.E_UPSTREAM: 502,
    ApiErrorCode.E_AUTH_UNAVAILABLE: 503,
    ApiErrorCode.E_INTERNAL: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class ValidationError(InvalidRequestError):
    """Malformed domain input: out-of-order range, bad recurrence, naive instant."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_VALIDATION_FAILED,
        message: str = "Validation failed",
    ):
        super().__init__(code, message)


class ConflictError(ApiError):
    """State precondition violated (duplicate edge, non-pending transition, taken name)."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_CONFLICT, message: str = "Conflict"):
        super().__init__(code, message)


class ImmutableSourceError(ApiError):
    """Attempt to mutate an entry imported from an external calendar."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_IMMUTABLE_SOURCE,
        message: str = (
            "Entries synced from an external calendar cannot be edited; "
            "create an override entry instead"
        ),
    ):
        super().__init__(code, message)


class UpstreamError(ApiError):
    """External provider failure (calendar fetch or push delivery).

    Attributes:
        status_code_upstream: HTTP status returned by the provider, if any.
    """

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_UPSTREAM,
        message: str = "Upstream provider error",
        status_code_upstream: int | None = None,
    ):
        self.status_code_upstream = status_code_upstream
        super().__init__(code, message)


class ExpiredCredentialError(ApiError):
    """External provider rejected the stored credential; the user must reconnect."""

    def __init__(
        self,
        code: ApiErrorCode = ApiErrorCode.E_CALENDAR_RECONNECT_REQUIRED,
        message: str = "Calendar access expired. Please reconnect your calendar.",
    ):
        super().__init__(code, message)
