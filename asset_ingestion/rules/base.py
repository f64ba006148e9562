"""
RuleProcessor protocol and supporting types.

Contract:
    ``RuleProcessor`` is the strategy interface every rule type implements:
        validate_config(raw) -> ConfigValidation
        process(value, config, context) -> ProcessingResult
    Implementations are pure and stateless: no I/O, no mutation of inputs.

Architecture:
    asset_ingestion/rules.  ZERO imports from models or services.

Invariants enforced:
    - Non-string input to a string processor is passed through unchanged
      with exactly one warning and no error (``passthrough_non_string``).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable
from uuid import UUID


# =============================================================================
# Supporting DTOs
# =============================================================================


@dataclass(frozen=True)
class ProcessingContext:
    """Per-value context handed to a processor."""

    row_number: int
    job_id: UUID | None = None
    correlation_id: str | None = None
    rule_name: str | None = None
    field: str | None = None
    metadata: Mapping[str, Any] = dataclasses.field(default_factory=dict)


@dataclass(frozen=True)
class ConfigValidation:
    """Result of ``validate_config``: a typed config or a list of errors."""

    ok: bool
    config: Any = None
    errors: tuple[str, ...] = ()

    @classmethod
    def valid(cls, config: Any) -> ConfigValidation:
        return cls(ok=True, config=config)

    @classmethod
    def invalid(cls, *errors: str) -> ConfigValidation:
        return cls(ok=False, errors=tuple(errors))


@dataclass(frozen=True)
class ProcessingResult:
    """Result of applying one processor to one value."""

    ok: bool
    value: Any
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# RuleProcessor Protocol
# =============================================================================


@runtime_checkable
class RuleProcessor(Protocol):
    """Strategy implementing config validation and value transformation.

    Contract:
        - ``rule_type``: the RuleType value this processor handles.
        - ``validate_config()``: reject malformed configs up front (e.g. an
          unparsable regex) so ``process()`` never discovers them.
        - ``process()``: transform one value; never raises for bad data.
    """

    @property
    def rule_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        ...

    def process(
        self,
        value: Any,
        config: Any,
        context: ProcessingContext,
    ) -> ProcessingResult:
        ...


# =============================================================================
# Helpers shared by string processors
# =============================================================================


def passthrough_non_string(
    value: Any, processor_name: str, context: ProcessingContext
) -> ProcessingResult:
    """Return ``value`` unchanged with a single type-mismatch warning."""
    return ProcessingResult(
        ok=True,
        value=value,
        warnings=(
            f"Row {context.row_number}: {processor_name} received non-string data, skipping",
        ),
    )


def config_value(raw: Mapping[str, Any], key: str, legacy_key: str | None, default: Any) -> Any:
    """Read ``key``, falling back to its legacy camelCase spelling."""
    if key in raw:
        return raw[key]
    if legacy_key is not None and legacy_key in raw:
        return raw[legacy_key]
    return default
