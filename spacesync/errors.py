"""
Error types for SpaceSync.

This module defines the exceptions raised by space operations:
- SpaceSyncError: Base exception
- ValidationError: Payload failed schema validation
- ForbiddenError: Permission check failed
- NotFoundError: A required space/item/member does not exist
- BadRequestError: Request is well-formed but not allowed (ex. editing the owner)

Invariants:
    - All errors inherit from SpaceSyncError
    - Every error carries a stable code for programmatic handling
    - ValidationError is raised before any storage access
"""

from __future__ import annotations

from typing import Any


class SpaceSyncError(Exception):
    """Base exception for all SpaceSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    status = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SPACESYNC_ERROR"
        self.details = details or {}


class ValidationError(SpaceSyncError):
    """Payload validation failed.

    Raised when:
    - Required field is missing
    - Field value has wrong type
    - The schema name is unknown
    """

    status = 400

    def __init__(
        self,
        message: str,
        schema: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION",
            details={"schema": schema, "errors": errors or []},
        )
        self.schema = schema
        self.errors = errors or []


class ForbiddenError(SpaceSyncError):
    """The acting user lacks a permission in a space."""

    status = 403

    def __init__(
        self,
        message: str,
        permission: str | None = None,
        space_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="FORBIDDEN",
            details={"permission": permission, "space_id": space_id},
        )
        self.permission = permission
        self.space_id = space_id


class NotFoundError(SpaceSyncError):
    """Resource not found.

    Raised when:
    - Space doesn't exist where existence is required
    - Item being edited or moved doesn't exist
    - Member referenced by an operation doesn't exist
    """

    status = 404

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: Any,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class BadRequestError(SpaceSyncError):
    """Request refused for a domain reason (ex. removing the space owner)."""

    status = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, code="BAD_REQUEST", details=details)
