"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM rows MUST inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class SettlementResponse(BaseResponseSchema):
            id: UUID
            target_id: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class SnapshotSchema(BaseModel):
    """Immutable value copied out of live configuration."""
    model_config = ConfigDict(frozen=True, from_attributes=True)
