class AppError(Exception):
    """Base class for all application exceptions."""
    retryable = False

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Raised when caller input violates a precondition. Nothing is written."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=422, details=details)

class ConflictError(AppError):
    """Raised when a write would overlap an existing permission or double-book a slot."""
    def __init__(self, message: str, *, kind: str, details: dict | None = None):
        self.kind = kind
        super().__init__(message, status_code=409, details={"kind": kind, **(details or {})})

class NotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class AuthorizationError(AppError):
    """Raised when a user acts on a record they do not own."""
    def __init__(self, message: str):
        super().__init__(message, status_code=403)

class NetworkError(AppError):
    """Transient failure reaching the remote store. Safe to retry."""
    retryable = True

    def __init__(self, message: str = "Remote store unreachable", status_code: int = 503, details: dict | None = None):
        super().__init__(message, status_code=status_code, details=details)

class RemoteTimeoutError(NetworkError):
    """The remote store did not answer in time. Handled exactly like a network failure."""
    def __init__(self, message: str = "Remote store timed out", details: dict | None = None):
        super().__init__(message, status_code=504, details=details)

class UnknownError(AppError):
    """Anything the store raised that does not fit the categories above."""
    def __init__(self, message: str = "Unexpected failure", details: dict | None = None):
        super().__init__(message, status_code=500, details=details)
