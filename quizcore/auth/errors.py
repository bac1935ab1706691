"""
Error taxonomy for the authentication service.

Every failure the core can report is a subclass of ``AuthError`` carrying a
machine-readable ``kind``, so the HTTP layer can map it without parsing
messages.
"""
from enum import Enum
from typing import Optional, Sequence


class AuthError(Exception):
    """Base class for all authentication-service errors."""


class RegistrationErrorKind(str, Enum):
    DUPLICATE_USERNAME = "DuplicateUsername"
    DUPLICATE_EMAIL = "DuplicateEmail"
    WEAK_PASSWORD = "WeakPassword"
    INVALID_INPUT = "InvalidInput"
    UNKNOWN_ROLE = "UnknownRole"
    STORAGE = "StorageError"


class RegistrationError(AuthError):
    """Registration was rejected; ``kind`` says why."""

    def __init__(
        self,
        kind: RegistrationErrorKind,
        message: str = "",
        violations: Sequence[str] = (),
        transient: bool = False,
    ):
        self.kind = kind
        self.violations = list(violations)
        self.transient = transient
        super().__init__(message or kind.value)


class TokenValidationErrorKind(str, Enum):
    BAD_SIGNATURE = "BadSignature"
    ISSUER_MISMATCH = "IssuerMismatch"
    AUDIENCE_MISMATCH = "AudienceMismatch"
    EXPIRED = "Expired"
    NOT_YET_VALID = "NotYetValid"
    MALFORMED = "Malformed"


class TokenValidationError(AuthError):
    """A bearer token failed one of the validation checks."""

    def __init__(self, kind: TokenValidationErrorKind, message: str = ""):
        self.kind = kind
        super().__init__(message or kind.value)


class AuthenticationError(AuthError):
    """Credentials or a refresh token were rejected."""


class StorageError(AuthError):
    """The credential store failed.

    ``transient`` marks connectivity problems a caller may retry.
    """

    def __init__(self, message: str = "", transient: bool = False):
        self.transient = transient
        super().__init__(message or "Credential store failure")


class UniqueViolation(StorageError):
    """A uniqueness constraint rejected the write at commit time."""

    def __init__(self, field: Optional[str] = None, message: str = ""):
        self.field = field
        super().__init__(message or f"Unique constraint violated on {field or 'unknown field'}")


class UnknownRoleError(StorageError):
    """One or more requested roles do not exist."""

    def __init__(self, roles: Sequence[str]):
        self.roles = list(roles)
        super().__init__(f"Unknown role(s): {', '.join(self.roles)}")
