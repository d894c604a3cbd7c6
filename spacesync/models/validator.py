"""
Payload schemas for SpaceSync objects.

Schemas are pydantic models looked up by name. validate() returns a clean
dict (unknown fields dropped) or raises ValidationError before the caller
touches storage.

Invariants:
    - Validation is deterministic and has no side effects
    - Schema names double as sync type tags (space, board, note)
"""

from __future__ import annotations

from typing import Any

import pydantic
from pydantic import BaseModel, Field, field_validator

from ..access.permissions import Role
from ..errors import ValidationError


class SpaceSchema(BaseModel):
    id: str = Field(min_length=1)
    user_id: int
    body: str | None = None


class SpaceMemberSchema(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        valid = [r.value for r in Role]
        if value not in valid:
            raise ValueError(f"must be one of {valid}")
        return value


class BoardSchema(BaseModel):
    id: str = Field(min_length=1)
    space_id: str = Field(min_length=1)
    user_id: int
    keys: list[dict[str, Any]] | None = None
    body: str | None = None


class NoteSchema(BaseModel):
    id: str = Field(min_length=1)
    space_id: str = Field(min_length=1)
    board_id: str | None = None
    user_id: int
    keys: list[dict[str, Any]] | None = None
    body: str | None = None
    file: dict[str, Any] | None = None


SCHEMAS: dict[str, type[BaseModel]] = {
    "space": SpaceSchema,
    "space-member": SpaceMemberSchema,
    "board": BoardSchema,
    "note": NoteSchema,
}


def validate(schema_name: str, data: Any) -> dict[str, Any]:
    """Validate a payload against a named schema.

    Args:
        schema_name: One of SCHEMAS
        data: Incoming payload

    Returns:
        The validated payload (unknown fields removed, unset optionals omitted)

    Raises:
        ValidationError: If the schema is unknown or the payload is invalid
    """
    model = SCHEMAS.get(schema_name)
    if model is None:
        raise ValidationError(f"Unknown schema '{schema_name}'", schema=schema_name)
    if not isinstance(data, dict):
        raise ValidationError(
            f"Validation failed for {schema_name}: payload must be an object",
            schema=schema_name,
            errors=["payload must be an object"],
        )

    try:
        obj = model.model_validate(data)
    except pydantic.ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Validation failed for {schema_name}: {'; '.join(errors)}",
            schema=schema_name,
            errors=errors,
        ) from e

    return obj.model_dump(exclude_none=True)
