"""
RuleEngine -- apply a phase's active rules to one row.

Contract:
    ``apply(row, phase, context)`` loads the active rules for ``phase`` from
    the rule source (fresh on every call), applies them in priority order to
    a copy of ``row``, and returns a RuleApplication with the transformed row,
    aggregated errors and warnings, and the names of the rules applied.

Invariants enforced:
    - The caller's row is never mutated.
    - One rule's failure never stops the remaining rules; the engine reports
      ``ok=False`` only after every rule was attempted, and still returns the
      best-effort row.
    - Missing processor -> warning, rule skipped.  Invalid config -> error,
      rule skipped.

Architecture: asset_ingestion/rules.  Built once (with one ProcessorRegistry)
    and injected into every phase that needs it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from asset_kernel.exceptions import RuleProcessingError
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import PipelinePhase, PipelineRule
from asset_ingestion.rules.base import ProcessingContext
from asset_ingestion.rules.registry import ProcessorRegistry

logger = get_logger("ingestion.rule_engine")


class RuleSource(Protocol):
    """Anything that can list a phase's active rules in application order."""

    def list_active(self, phase: PipelinePhase) -> tuple[PipelineRule, ...]: ...


@dataclass(frozen=True)
class RuleApplication:
    """Outcome of applying a phase's rules to one row."""

    ok: bool
    row: dict[str, Any]
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    rules_applied: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


class RuleEngine:
    """Applies persisted rules through the processor registry."""

    def __init__(self, rule_source: RuleSource, registry: ProcessorRegistry):
        self._rules = rule_source
        self._registry = registry

    @property
    def rule_source(self) -> RuleSource:
        return self._rules

    def rules_for(self, phase: PipelinePhase) -> tuple[PipelineRule, ...]:
        return self._rules.list_active(PipelinePhase(phase))

    def apply(
        self,
        row: Mapping[str, Any],
        phase: PipelinePhase,
        context: ProcessingContext,
    ) -> RuleApplication:
        phase = PipelinePhase(phase)
        rules = self.rules_for(phase)
        current: dict[str, Any] = dict(row)

        if not rules:
            return RuleApplication(
                ok=True,
                row=current,
                warnings=(f"No rules found for phase: {phase.value}",),
                metadata={"phase": phase.value, "rules_considered": 0},
            )

        errors: list[str] = []
        warnings: list[str] = []
        applied: list[str] = []

        for rule in rules:
            processor = self._registry.find(rule.rule_type)
            if processor is None:
                warnings.append(f"No processor found for rule type: {rule.rule_type}")
                continue

            validation = processor.validate_config(rule.config)
            if not validation.ok:
                errors.append(
                    f"Invalid config for rule {rule.name}: {', '.join(validation.errors)}"
                )
                continue

            if not rule.is_wildcard and rule.target not in current:
                continue

            rule_context = dataclasses.replace(context, rule_name=rule.name, field=rule.target)
            target_value = current if rule.is_wildcard else current[rule.target]

            try:
                result = processor.process(target_value, validation.config, rule_context)
            except Exception as exc:
                logger.warning(
                    "rule_applied_failed",
                    extra={
                        "rule_name": rule.name,
                        "rule_type": rule.rule_type,
                        "row_number": context.row_number,
                        "error": str(exc),
                    },
                )
                errors.append(f"Error processing rule {rule.name}: {exc}")
                continue

            warnings.extend(result.warnings)
            if not result.ok:
                detail = ", ".join(result.errors) or "unknown error"
                errors.append(str(RuleProcessingError(rule.name, detail)))
                continue

            if rule.is_wildcard:
                if not isinstance(result.value, Mapping):
                    continue
                current = dict(result.value)
            else:
                current = {**current, rule.target: result.value}
            applied.append(rule.name)

        return RuleApplication(
            ok=not errors,
            row=current,
            errors=tuple(errors),
            warnings=tuple(warnings),
            rules_applied=tuple(applied),
            metadata={"phase": phase.value, "rules_considered": len(rules)},
        )
