"""
Error taxonomy shared by the authorization core and the feature routes.

Each error is an HTTPException so FastAPI serializes it directly, but the
distinct classes let callers tell "unknown" apart from "forbidden" and from
data-layer conflicts.
"""
from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Referenced principal, organization, role, user or task does not exist."""

    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class PermissionDeniedError(HTTPException):
    """A grantable request that was not granted. Always audited before raising."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictError(HTTPException):
    """Invariant violation at the data layer (duplicate name, non-empty delete, unknown role)."""

    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class HierarchyViolationError(ConflictError):
    """Organization would be nested deeper than two levels."""

    def __init__(self, detail: str = "Organization hierarchy cannot be deeper than two levels"):
        super().__init__(detail=detail)


class StorageFailureError(HTTPException):
    """Underlying persistence error. Not retried."""

    def __init__(self, detail: str = "Storage failure"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
