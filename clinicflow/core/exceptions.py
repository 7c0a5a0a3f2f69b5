"""Custom application exceptions.

Every exception carries a ``category`` so callers can tell a permission
problem (do not retry) from a validation problem (re-enter input) from a
transient store problem (retry later).
"""


class AppException(Exception):
    """Base application exception."""

    category = "internal"

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    category = "not_found"

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class RecordNotFoundException(NotFoundException):
    """Medical record not found."""

    def __init__(self, message: str = "Medical record not found"):
        """Initialize with 404 status code."""
        super().__init__(message)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    category = "identity"

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class PermissionDeniedException(AppException):
    """Role or capability check failed."""

    category = "permission"

    def __init__(self, message: str = "Permission denied"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class TenantNotReadyException(AppException):
    """Caller has no clinic assigned yet."""

    category = "tenant"

    def __init__(self, message: str = "Clinic not provisioned for this account"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ConflictException(AppException):
    """Conflict exception."""

    category = "conflict"

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class AlreadyExistsException(ConflictException):
    """Entity already exists."""

    def __init__(self, message: str = "Already exists"):
        """Initialize with 409 status code."""
        super().__init__(message)


class AdminAlreadyExistsException(AlreadyExistsException):
    """Bootstrap refused because an administrator is already configured."""

    def __init__(
        self, message: str = "An administrator is already configured; ask them for activation"
    ):
        """Initialize with 409 status code."""
        super().__init__(message)


class CannotRemoveOwnerException(ConflictException):
    """The clinic owner cannot be removed or demoted."""

    def __init__(self, message: str = "The clinic owner cannot be removed"):
        """Initialize with 409 status code."""
        super().__init__(message)


class ValidationException(AppException):
    """Validation error exception."""

    category = "validation"

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class StoreUnavailableException(AppException):
    """Transient failure talking to the store."""

    category = "transient"

    def __init__(self, message: str = "Data store unavailable, try again"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class IdentityException(AppException):
    """Identity provider failure translated to a user-facing message."""

    category = "identity"

    def __init__(self, code: str, message: str, status_code: int = 400):
        """Initialize with provider-independent error code."""
        self.code = code
        super().__init__(message, status_code=status_code)


class BootstrapFailedException(AppException):
    """Bootstrap could not complete; the cause is logged, not shown."""

    category = "internal"

    def __init__(self, message: str = "Could not activate your clinic. Try again."):
        """Initialize with 500 status code."""
        super().__init__(message, status_code=500)
