"""
Error taxonomy shared by the key store, the binding gateway and the admin API.

Each error carries a stable ``code`` and the HTTP status the API layer maps it to.
"""
from fastapi import status


class KeyGateError(Exception):
    """Base class for every expected failure."""
    code = "keygate_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected key service error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(KeyGateError):
    """Malformed or missing caller-supplied fields. Never touches storage."""
    code = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class NotFound(KeyGateError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Key not found"


class Expired(KeyGateError):
    code = "expired"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This key is no longer valid"


class DeviceMismatch(KeyGateError):
    code = "device_mismatch"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This key is linked to another device"


class Conflict(KeyGateError):
    """Uniqueness violation on create."""
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Key already exists"


class GenerationConflict(Conflict):
    """A freshly generated key id collided with a live key; the caller should retry."""
    code = "generation_conflict"
    default_message = "Generated key id collided with an existing key, please retry"


class Unauthorized(KeyGateError):
    code = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Invalid Admin Password"


class StoreUnavailable(KeyGateError):
    """Underlying storage unreachable. Retryable, never reported as a missing key."""
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Key storage is temporarily unavailable. Please try again later."
