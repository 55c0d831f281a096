"""
Custom Exceptions

Centralized exception definitions. Most map directly to an HTTP status;
SecretError additionally carries a machine-readable code that the
secret-management API returns in its error envelope.
"""
from typing import Any, Dict, List, Optional
from fastapi import HTTPException, status


class TenantNotFoundError(HTTPException):
    """Raised when tenant cannot be found."""

    def __init__(self, tenant_identifier: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tenant not found: {tenant_identifier}" if tenant_identifier else "Tenant not found"
        )


class NotFoundError(HTTPException):
    """Raised when a tenant-scoped record cannot be found."""

    entity = "Record"

    def __init__(self, record_id: str = ""):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{self.entity} not found: {record_id}" if record_id else f"{self.entity} not found"
        )


class UserNotFoundError(NotFoundError):
    entity = "User"


class CompanyNotFoundError(NotFoundError):
    entity = "Company"


class ProjectNotFoundError(NotFoundError):
    entity = "Project"


class TaskNotFoundError(NotFoundError):
    entity = "Task"


class ExperienceNotFoundError(NotFoundError):
    entity = "Experience"


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class TenantIsolationError(HTTPException):
    """
    Raised when a tenant isolation violation is detected.

    Always logged at error level by the application handler.
    """

    def __init__(self, detail: str = "Tenant isolation violation"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class PermissionDenied(HTTPException):
    """Raised when the caller's roles do not allow an action."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class InvalidInputError(HTTPException):
    """Raised when input validation fails."""

    def __init__(self, detail: str = "Invalid input"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class DuplicateRecordError(HTTPException):
    """Raised when a unique record already exists."""

    def __init__(self, detail: str = "Record already exists"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class InvalidExperienceError(HTTPException):
    """Raised when an Experience JSON document fails validation."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=errors
        )


# Error code -> HTTP status for the secret-management API
SECRET_ERROR_STATUS = {
    "UNAUTHORIZED": status.HTTP_401_UNAUTHORIZED,
    "FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_OR_EXPIRED_TOKEN": status.HTTP_400_BAD_REQUEST,
    "WORKFLOW_KEY_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "NO_ACTIVE_SECRET": status.HTTP_404_NOT_FOUND,
    "WORKFLOW_NOT_CONFIGURED": status.HTTP_404_NOT_FOUND,
    "RATE_LIMIT_EXCEEDED": status.HTTP_429_TOO_MANY_REQUESTS,
    "MISSING_SIGNATURE": status.HTTP_401_UNAUTHORIZED,
    "INVALID_SIGNATURE": status.HTTP_401_UNAUTHORIZED,
    "SECRET_NOT_CONFIGURED": status.HTTP_404_NOT_FOUND,
    "SECRET_EXPIRED": status.HTTP_401_UNAUTHORIZED,
    "PING_FAILED": status.HTTP_502_BAD_GATEWAY,
}


class SecretError(HTTPException):
    """
    Secret lifecycle / webhook signature failure.

    `code` is one of SECRET_ERROR_STATUS; unknown codes map to 500.
    """

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(
            status_code=SECRET_ERROR_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
            detail=message or code
        )
