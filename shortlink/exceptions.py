"""Domain error taxonomy for the shortlink service.

Every error carries an ``error_code`` so the HTTP layer and logs can report a
stable identifier independent of the message text.

Error Hierarchy
===============
::
    ShortLinkError
    ├─ ValidationError            (400)
    ├─ InvalidEncodingError       (400)
    ├─ ConflictError              (400)
    │  └─ AliasTakenError
    ├─ NotFoundError              (404)
    │  └─ ExpiredError
    ├─ AuthenticationError        (401)
    ├─ OwnershipError             (403)
    ├─ RateLimitExceeded          (429)
    ├─ AllocationExhaustedError   (500)
    └─ StoreUnavailableError      (503)
"""

__all__ = [
    "ShortLinkError",
    "ValidationError",
    "InvalidEncodingError",
    "ConflictError",
    "AliasTakenError",
    "NotFoundError",
    "ExpiredError",
    "AuthenticationError",
    "OwnershipError",
    "RateLimitExceeded",
    "AllocationExhaustedError",
    "StoreUnavailableError",
]


class ShortLinkError(Exception):
    """Base exception for all application-specific errors."""

    error_code = "app:shortlink_error"


class ValidationError(ShortLinkError):
    """Raised when a destination URL is malformed or not allowed."""

    error_code = "input:validation_error"


class InvalidEncodingError(ShortLinkError):
    """Raised when a code contains characters outside the Base62 alphabet."""

    error_code = "input:invalid_encoding_error"


class ConflictError(ShortLinkError):
    """Raised when a requested code is unavailable."""

    error_code = "input:conflict_error"


class AliasTakenError(ConflictError):
    """Raised when an alias is already claimed, by pre-check or by the store."""

    error_code = "input:alias_taken_error"

    def __init__(self, code: str):
        super().__init__(f"Alias '{code}' is already taken")
        self.code = code


class NotFoundError(ShortLinkError):
    """Raised when no live mapping exists for a code or identity."""

    error_code = "lookup:not_found_error"


class ExpiredError(NotFoundError):
    """Raised when a mapping exists but its expiry instant has passed."""

    error_code = "lookup:expired_error"

    def __init__(self, code: str):
        super().__init__(f"Short URL '{code}' has expired")
        self.code = code


class AuthenticationError(ShortLinkError):
    """Raised when a request needs an identity and none was resolved."""

    error_code = "auth:authentication_error"


class OwnershipError(ShortLinkError):
    """Raised when an identity reads analytics for a link it does not own."""

    error_code = "auth:ownership_error"


class RateLimitExceeded(ShortLinkError):
    """Raised when an identity's token bucket cannot cover a request."""

    error_code = "traffic:rate_limit_exceeded"

    def __init__(self, identity: str, retry_after: float):
        super().__init__(f"Rate limit exceeded for {identity}")
        self.identity = identity
        self.retry_after = retry_after


class AllocationExhaustedError(ShortLinkError):
    """Raised when every generated candidate collided with an existing code."""

    error_code = "infra:allocation_exhausted_error"

    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate a unique short code after {attempts} attempts")
        self.attempts = attempts


class StoreUnavailableError(ShortLinkError):
    """Raised when the durable store cannot serve a read or a confirmed write."""

    error_code = "infra:store_unavailable_error"
