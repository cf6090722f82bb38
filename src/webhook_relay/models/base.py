"""Base models and shared types for the webhook relay."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def generate_id(prefix: str) -> str:
    """Generate a unique ID with the given prefix.

    Examples:
        generate_id("dlv") -> "dlv_a1b2c3d4e5f6"
        generate_id("dlq") -> "dlq_a1b2c3d4e5f6"
    """
    return f"{prefix}_{uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class ValidationIssue(BaseModel):
    """A single problem found while validating a webhook configuration."""

    model_config = ConfigDict(extra="forbid")

    field: str = Field(description="Field that failed validation")
    message: str = Field(description="Human-readable description")
    value: Any = Field(default=None, description="Offending value")


class ValidationResult(BaseModel):
    """Outcome of validating a webhook configuration.

    Attributes:
        is_valid: True when no issues were found.
        errors: Every issue found, in field order.
    """

    model_config = ConfigDict(extra="forbid")

    is_valid: bool = Field(description="Whether the configuration is usable")
    errors: list[ValidationIssue] = Field(default_factory=list)

    @property
    def error_message(self) -> str:
        """All issue messages joined into one line."""
        return ", ".join(issue.message for issue in self.errors)
