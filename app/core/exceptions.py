"""
Platform-wide exception hierarchy.

Services raise these; blueprints register one handler per family and get
consistent HTTP status codes and a machine-checkable ``kind`` everywhere.

Families:
    ValidationError     malformed input, rejected before any read      → 400
    StateConflictError  conflicting persisted state, nothing mutated   → 409
    AuthorizationError  caller lacks the role or access                → 403
    NotFoundError       unknown id                                     → 404

Usage:
    from app.core.exceptions import NotFoundError, StateConflictError

    raise NotFoundError(resource="PermissionRequest", resource_id=42)
    raise StateConflictError("AlreadyPending", "You already have a pending request")
"""


class DomainError(Exception):
    """Base for every error a service surfaces to its caller.

    Args:
        kind: Machine-checkable error kind (e.g. "AlreadyPending").
        message: Human-readable explanation.
        details: Optional structured payload for API responses.
    """

    default_kind = "DomainError"

    def __init__(self, kind: str | None = None, message: str = "", details: dict | None = None) -> None:
        self.kind = kind or self.default_kind
        self.message = message or self.kind
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DomainError):
    """Input failed validation (range, length, missing field, bad format).

    Kinds: ValidationError, InvalidExpiry, InvalidTarget.
    """

    default_kind = "ValidationError"

    def __init__(self, message: str, details: dict | None = None, kind: str | None = None) -> None:
        super().__init__(kind, message, details)


class StateConflictError(DomainError):
    """Persisted state forbids the operation.

    Kinds: AlreadyPending, AlreadyGranted, AlreadyReviewed, ReportFinal,
    WrongDate, AlreadySubmitted.
    """

    default_kind = "StateConflict"


class AuthorizationError(DomainError):
    """Caller is not allowed to perform the operation.

    Kinds: RoleMismatch, InsufficientPermissions, TaskNotAccessible.
    """

    default_kind = "InsufficientPermissions"


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "TemporaryPermission").
        resource_id: The id that was looked up.
    """

    default_kind = "NotFound"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(None, msg, {"resource": resource})
