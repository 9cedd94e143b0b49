# giftshop/errors.py
"""Error taxonomy for the catalog service.

Every error is an ``HTTPException`` so route handlers can let it propagate and
FastAPI renders it. Domain modules raise these directly, the same way the
store logic raises ``HTTPException`` for bad input.
"""
from typing import Optional

from fastapi import HTTPException

LOGIN_ROUTE = "/login"


class CatalogValidationError(HTTPException):
    """Malformed form input or an unsupported upload; ``field`` names the offending control."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(status_code=422, detail={"message": message, "field": field})
        self.message = message
        self.field = field


class AuthorizationError(HTTPException):
    """No session (401) or a role that may not perform the action (403)."""

    def __init__(self, message: str = "authentication required", status_code: int = 401):
        super().__init__(
            status_code=status_code,
            detail={"message": message, "redirect": LOGIN_ROUTE},
            headers={"Location": LOGIN_ROUTE},
        )
        self.message = message


class NotFoundError(HTTPException):
    def __init__(self, what: str = "product"):
        super().__init__(status_code=404, detail=f"{what} not found")


class TransitionError(HTTPException):
    def __init__(self, current: str, target: str):
        super().__init__(status_code=409, detail=f"cannot move product from {current} to {target}")
        self.current = current
        self.target = target


class RemoteServiceError(HTTPException):
    """The persistence, storage or identity service failed. Safe to retry."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(status_code=502, detail=f"{operation} failed, please try again")
        self.operation = operation
        self.cause = cause


class DuplicateValueError(RemoteServiceError):
    """A write collided with a unique column; ``column`` is set when the service names it."""

    def __init__(self, operation: str, column: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(operation, cause)
        self.status_code = 409
        self.detail = f"{operation} failed, {column or 'value'} already exists"
        self.column = column
