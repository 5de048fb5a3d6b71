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
    E_INVALID_SIGNATURE = "E_INVALID_SIGNATURE"

    # Authorization / policy errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_STAFF_DISABLED = "E_STAFF_DISABLED"
    E_BLOCKED = "E_BLOCKED"
    E_ACCOUNT_BLOCKED = "E_ACCOUNT_BLOCKED"
    E_ACCOUNT_UNVERIFIED = "E_ACCOUNT_UNVERIFIED"
    E_NOT_AD_OWNER = "E_NOT_AD_OWNER"
    E_NOT_PARTICIPANT = "E_NOT_PARTICIPANT"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_AD_NOT_FOUND = "E_AD_NOT_FOUND"
    E_USER_NOT_FOUND = "E_USER_NOT_FOUND"
    E_CONVERSATION_NOT_FOUND = "E_CONVERSATION_NOT_FOUND"
    E_OFFER_NOT_FOUND = "E_OFFER_NOT_FOUND"
    E_BOOST_NOT_FOUND = "E_BOOST_NOT_FOUND"
    E_BLOCK_NOT_FOUND = "E_BLOCK_NOT_FOUND"
    E_REPORT_NOT_FOUND = "E_REPORT_NOT_FOUND"
    E_NOTIFICATION_NOT_FOUND = "E_NOTIFICATION_NOT_FOUND"
    E_DEVICE_TOKEN_NOT_FOUND = "E_DEVICE_TOKEN_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_SELF_CHAT = "E_SELF_CHAT"
    E_SELF_BLOCK = "E_SELF_BLOCK"
    E_INVALID_MESSAGE = "E_INVALID_MESSAGE"
    E_INVALID_FILE_TYPE = "E_INVALID_FILE_TYPE"
    E_FILE_TOO_LARGE = "E_FILE_TOO_LARGE"
    E_AD_NOT_VALIDATED = "E_AD_NOT_VALIDATED"
    E_AMOUNT_MISMATCH = "E_AMOUNT_MISMATCH"
    E_PAYMENT_VERIFICATION_FAILED = "E_PAYMENT_VERIFICATION_FAILED"

    # Payment required (402)
    E_PAYMENT_NOT_SUCCESSFUL = "E_PAYMENT_NOT_SUCCESSFUL"

    # Conflict errors (409)
    E_ALREADY_BOOSTED = "E_ALREADY_BOOSTED"
    E_DUPLICATE_TRANSACTION = "E_DUPLICATE_TRANSACTION"
    E_OFFER_NAME_TAKEN = "E_OFFER_NAME_TAKEN"
    E_OFFER_IN_USE = "E_OFFER_IN_USE"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500
    E_PAYMENT_GATEWAY_UNAVAILABLE = "E_PAYMENT_GATEWAY_UNAVAILABLE"  # 502


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_INVALID_SIGNATURE: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_STAFF_DISABLED: 403,
    ApiErrorCode.E_BLOCKED: 403,
    ApiErrorCode.E_ACCOUNT_BLOCKED: 403,
    ApiErrorCode.E_ACCOUNT_UNVERIFIED: 403,
    ApiErrorCode.E_NOT_AD_OWNER: 403,
    ApiErrorCode.E_NOT_PARTICIPANT: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_AD_NOT_FOUND: 404,
    ApiErrorCode.E_USER_NOT_FOUND: 404,
    ApiErrorCode.E_CONVERSATION_NOT_FOUND: 404,
    ApiErrorCode.E_OFFER_NOT_FOUND: 404,
    ApiErrorCode.E_BOOST_NOT_FOUND: 404,
    ApiErrorCode.E_BLOCK_NOT_FOUND: 404,
    ApiErrorCode.E_REPORT_NOT_FOUND: 404,
    ApiErrorCode.E_NOTIFICATION_NOT_FOUND: 404,
    ApiErrorCode.E_DEVICE_TOKEN_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_SELF_CHAT: 400,
    ApiErrorCode.E_SELF_BLOCK: 400,
    ApiErrorCode.E_INVALID_MESSAGE: 400,
    ApiErrorCode.E_INVALID_FILE_TYPE: 400,
    ApiErrorCode.E_FILE_TOO_LARGE: 400,
    ApiErrorCode.E_AD_NOT_VALIDATED: 400,
    ApiErrorCode.E_AMOUNT_MISMATCH: 400,
    ApiErrorCode.E_PAYMENT_VERIFICATION_FAILED: 400,
    ApiErrorCode.E_PAYMENT_NOT_SUCCESSFUL: 402,
    ApiErrorCode.E_ALREADY_BOOSTED: 409,
    ApiErrorCode.E_DUPLICATE_TRANSACTION: 409,
    ApiErrorCode.E_OFFER_NAME_TAKEN: 409,
    ApiErrorCode.E_OFFER_IN_USE: 409,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
    ApiErrorCode.E_PAYMENT_GATEWAY_UNAVAILABLE: 502,
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


class ConflictError(ApiError):
    """State conflict error (duplicates, invariant violations)."""

    def __init__(self, code: ApiErrorCode, message: str = "Conflict"):
        super().__init__(code, message)
