"""
Base class and input guards shared by the storefront domain models.

Entities are mutable Pydantic models with store-assigned integer identity.
Assignment is validated, so field constraints (e.g. ``balance >= 0``) hold
even if a caller bypasses the domain methods.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront.exceptions import ValidationError


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class Entity(BaseModel):
    """
    Base class for persisted domain entities.

    Attributes:
        id: Store-assigned identifier (None until first save)
        created_at: When the entity was created
        updated_at: When the entity was last changed
    """

    model_config = ConfigDict(
        from_attributes=True,
        validate_assignment=True,
    )

    id: int | None = Field(
        default=None,
        description="Store-assigned identifier (None until first save)",
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_persisted(self) -> bool:
        """True once a store has assigned an identifier."""
        return self.id is not None

    def touch(self) -> None:
        """Mark the entity as changed now."""
        self.updated_at = utcnow()

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


def require_positive(value: Any, field: str) -> int:
    """
    Return ``value`` if it is a strictly positive int, else raise.

    Booleans are rejected even though ``bool`` subclasses ``int``.

    Raises:
        ValidationError: If value is not a positive integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if value <= 0:
        raise ValidationError(f"{field} must be greater than 0, got {value}", field=field)
    return value


def require_non_negative(value: Any, field: str) -> int:
    """
    Return ``value`` if it is an int >= 0, else raise.

    Raises:
        ValidationError: If value is not a non-negative integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if value < 0:
        raise ValidationError(
            f"{field} must be greater than or equal to 0, got {value}", field=field
        )
    return value


def require_non_blank(value: Any, field: str) -> str:
    """
    Return ``value`` stripped of surrounding whitespace if it is non-blank.

    Raises:
        ValidationError: If value is not a string or is blank
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must not be blank", field=field)
    return value.strip()
