"""
Domain Exceptions for DocVerify

Every error the service raises on purpose derives from DocVerifyError and
carries a machine-readable code plus optional field/suggestion hints. The API
middleware maps each class to an HTTP status; anything else is treated as an
internal fault.
"""

from typing import Optional


class DocVerifyError(Exception):
    """Base class for expected, caller-visible failures."""

    code: str = "DOCVERIFY_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        suggestion: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        if code:
            self.code = code
        self.suggestion = suggestion


# ============================================
# VALIDATION
# ============================================

class ValidationError(DocVerifyError, ValueError):
    """Missing or malformed input; raised before any mutation."""
    code = "VALIDATION_ERROR"


class UnsupportedMediaTypeError(ValidationError):
    """Uploaded document has a mime type outside the allowed set."""
    code = "UNSUPPORTED_MEDIA_TYPE"


class PayloadTooLargeError(ValidationError):
    """Uploaded document exceeds the configured size limit."""
    code = "PAYLOAD_TOO_LARGE"


class SelfDeactivationError(ValidationError):
    """An admin tried to deactivate its own account."""
    code = "SELF_DEACTIVATION"


# ============================================
# LOOKUP / OWNERSHIP
# ============================================

class NotFoundError(DocVerifyError):
    """Requested resource does not exist."""
    code = "NOT_FOUND"


class NotFoundOrForbiddenError(NotFoundError):
    """Scoped lookup miss: the record does not exist or belongs to another admin."""
    code = "NOT_FOUND_OR_FORBIDDEN"

    def __init__(self, message: str = "Verification not found or you do not have permission to access it"):
        super().__init__(message)


class PermissionDeniedError(DocVerifyError):
    """Actor's role does not allow the operation."""
    code = "PERMISSION_DENIED"


class ConflictError(DocVerifyError):
    """Duplicate key or concurrent modification."""
    code = "CONFLICT"


# ============================================
# AUTHENTICATION
# ============================================

class AuthError(DocVerifyError):
    """Authentication failed.

    Subclasses record the internal reason; callers only ever see the
    generic message.
    """
    code = "AUTH_FAILED"
    reason = "auth_failed"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    reason = "invalid_credentials"


class AccountLockedError(AuthError):
    reason = "account_locked"


class AccountInactiveError(AuthError):
    reason = "account_inactive"


class TokenError(AuthError):
    """Bearer token is missing, malformed, expired or no longer valid."""
    code = "TOKEN_INVALID"
    reason = "token_invalid"

    def __init__(self, message: str = "Invalid token", expired: bool = False):
        super().__init__(message)
        self.expired = expired
        if expired:
            self.code = "TOKEN_EXPIRED"
            self.reason = "token_expired"


# ============================================
# STORAGE
# ============================================

class StorageError(DocVerifyError):
    """Document storage backend failed."""
    code = "STORAGE_ERROR"
