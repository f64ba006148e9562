"""
Shared immutable DTOs used across the pipeline.

``ValidationError`` is the value form of a row-level problem: phases collect
these instead of raising, and staging rows persist them as JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Contract:
        Carries a machine-readable code, human-readable message, optional
        field name, and optional details dict.

    Non-goals:
        - Does NOT raise exceptions -- it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Aggregate of zero or more ValidationErrors plus non-fatal warnings.

    ``is_valid`` is True only when there are no errors.
    """

    errors: tuple[ValidationError, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(e.message for e in self.errors)
