"""Exception hierarchy for the short-link service.

Services raise these; ``bitlytics.routes`` translates them into HTTP responses.

Hierarchy
=========
::
    ShortLinkError
    ├─ LinkValidationError (ValueError)          → 400
    │  ├─ UrlValidationError
    │  │  ├─ EmptyUrl
    │  │  ├─ InvalidUrl
    │  │  ├─ UnsupportedScheme
    │  │  ├─ PrivateAddressRejected
    │  │  └─ InvalidDomain
    │  └─ CodeValidationError
    │     ├─ InvalidCustomCode
    │     └─ ReservedCode
    ├─ CodeConflict                               → 409
    ├─ GenerationExhausted                        → 503
    ├─ LinkNotFound                               → 404
    ├─ AuthenticationRequired                     → 401
    ├─ PermissionDenied                           → 403
    └─ TransientInfraError                        → 503
       └─ StoreUnavailable
"""

__all__ = [
    "AuthenticationRequired",
    "CodeConflict",
    "CodeValidationError",
    "EmptyUrl",
    "GenerationExhausted",
    "InvalidCustomCode",
    "InvalidDomain",
    "InvalidUrl",
    "LinkNotFound",
    "LinkValidationError",
    "PermissionDenied",
    "PrivateAddressRejected",
    "ReservedCode",
    "ShortLinkError",
    "StoreUnavailable",
    "TransientInfraError",
    "UnsupportedScheme",
    "UrlValidationError",
]


class ShortLinkError(Exception):
    """Base class for every error the service raises on purpose."""

    default_message = "Short link error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class LinkValidationError(ShortLinkError, ValueError):
    default_message = "Invalid input"


class UrlValidationError(LinkValidationError):
    default_message = "Invalid URL"


class EmptyUrl(UrlValidationError):
    default_message = "URL cannot be empty"


class InvalidUrl(UrlValidationError):
    default_message = "Invalid URL format"


class UnsupportedScheme(UrlValidationError):
    default_message = "Only HTTP and HTTPS protocols are allowed"


class PrivateAddressRejected(UrlValidationError):
    default_message = "Private and localhost URLs are not allowed"


class InvalidDomain(UrlValidationError):
    default_message = "Invalid domain name"


class CodeValidationError(LinkValidationError):
    default_message = "Invalid short code"


class InvalidCustomCode(CodeValidationError):
    default_message = (
        "Custom code must be 3-20 characters long and contain only letters, numbers, and hyphens"
    )


class ReservedCode(CodeValidationError):
    default_message = "This custom code is reserved and cannot be used"


class CodeConflict(ShortLinkError):
    default_message = "This custom code is already taken"


class GenerationExhausted(ShortLinkError):
    default_message = "Failed to generate unique short code. Please try again."

    def __init__(self, attempts: int) -> None:
        super().__init__(f"{self.default_message} ({attempts} attempts collided)")
        self.attempts = attempts


class LinkNotFound(ShortLinkError):
    # Same message whether the code never existed, expired or was deactivated.
    default_message = "Short URL not found"


class AuthenticationRequired(ShortLinkError):
    default_message = "Authentication required"


class PermissionDenied(ShortLinkError):
    default_message = "You can only modify your own URLs"


class TransientInfraError(ShortLinkError):
    default_message = "Service temporarily unavailable"


class StoreUnavailable(TransientInfraError):
    default_message = "Link store is temporarily unavailable"
