"""
RuleStore -- durable collection of PipelineRules.

Contract:
    CRUD over ``pipeline_rules`` plus the two reads the engine needs:
    ``list_active(phase)`` (priority ascending, creation order on ties) and
    ``ensure_default_rules`` (explicit, logged, idempotent seeding).
    Rules are read fresh on every call; nothing is cached, so edits take
    effect on the next row processed.

Architecture: asset_ingestion/rules.  Session is injected; the store only
    flushes, the caller owns the transaction.

Invariants enforced:
    - A rule is persisted only if its rule_type has a registered processor
      and its config passes that processor's validation.
    - ensure_default_rules never creates anything when an active rule for
      the phase already exists.
"""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from asset_config.schema import DefaultRuleDef
from asset_kernel.exceptions import RuleConfigError, RuleNotFoundError
from asset_kernel.logging_config import get_logger

from asset_ingestion.domain.types import PIPELINE_ORDER, PipelinePhase, PipelineRule
from asset_ingestion.models.rules import PipelineRuleModel
from asset_ingestion.rules.registry import ProcessorRegistry

logger = get_logger("ingestion.rule_store")

_UPDATABLE_FIELDS = frozenset(
    {"name", "phase", "rule_type", "target", "config", "priority", "is_active", "description"}
)

# Stand-in creator for rules provisioned by the pipeline itself.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class RuleStore:
    """Persistence and lookup of pipeline rules."""

    def __init__(self, session: Session, registry: ProcessorRegistry):
        self._session = session
        self._registry = registry

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_active(self, phase: PipelinePhase) -> tuple[PipelineRule, ...]:
        """Active rules for one phase, earliest-priority first."""
        stmt = (
            select(PipelineRuleModel)
            .where(
                PipelineRuleModel.phase == PipelinePhase(phase).value,
                PipelineRuleModel.is_active.is_(True),
            )
            .order_by(PipelineRuleModel.priority, PipelineRuleModel.creation_seq)
        )
        return tuple(m.to_dto() for m in self._session.scalars(stmt))

    def has_active(self, phase: PipelinePhase) -> bool:
        stmt = select(func.count()).select_from(PipelineRuleModel).where(
            PipelineRuleModel.phase == PipelinePhase(phase).value,
            PipelineRuleModel.is_active.is_(True),
        )
        return (self._session.scalar(stmt) or 0) > 0

    def get_rule(self, rule_id: UUID) -> PipelineRule:
        return self._get_model(rule_id).to_dto()

    def list_rules(self) -> tuple[PipelineRule, ...]:
        """Every rule, ordered by pipeline phase, priority, then name."""
        order = {phase.value: i for i, phase in enumerate(PIPELINE_ORDER)}
        models = list(self._session.scalars(select(PipelineRuleModel)))
        models.sort(key=lambda m: (order.get(m.phase, len(order)), m.priority, m.name))
        return tuple(m.to_dto() for m in models)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_rule(
        self,
        *,
        name: str,
        phase: PipelinePhase | str,
        rule_type: str,
        target: str,
        config: dict[str, Any] | None = None,
        priority: int = 0,
        is_active: bool = True,
        description: str | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> PipelineRule:
        """Validate and persist a new rule.

        Raises:
            ValueError: Unknown phase.
            ProcessorNotRegisteredError: Unknown rule_type.
            RuleConfigError: Config rejected by the processor.
        """
        phase_value = PipelinePhase(phase).value
        rule_type_value = str(getattr(rule_type, "value", rule_type))
        config = dict(config or {})
        self._validate(name, rule_type_value, config)

        model = PipelineRuleModel(
            id=uuid4(),
            name=name,
            phase=phase_value,
            rule_type=rule_type_value,
            target=target,
            config=config,
            priority=priority,
            creation_seq=self._next_sequence(),
            is_active=is_active,
            description=description,
            created_by_id=actor_id,
            updated_by_id=None,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "rule_created",
            extra={
                "rule_id": str(model.id),
                "rule_name": name,
                "phase": phase_value,
                "rule_type": rule_type_value,
                "target": target,
                "priority": priority,
            },
        )
        return model.to_dto()

    def update_rule(self, rule_id: UUID, actor_id: UUID = SYSTEM_ACTOR_ID, **changes: Any) -> PipelineRule:
        """Apply a partial update.  Unknown field names raise ValueError."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update rule fields: {sorted(unknown)}")

        model = self._get_model(rule_id)
        if "phase" in changes:
            changes["phase"] = PipelinePhase(changes["phase"]).value
        if "rule_type" in changes:
            changes["rule_type"] = str(getattr(changes["rule_type"], "value", changes["rule_type"]))

        if "rule_type" in changes or "config" in changes:
            self._validate(
                changes.get("name", model.name),
                changes.get("rule_type", model.rule_type),
                dict(changes.get("config", model.config) or {}),
            )

        for key, value in changes.items():
            setattr(model, key, dict(value or {}) if key == "config" else value)
        model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "rule_updated",
            extra={"rule_id": str(rule_id), "fields": sorted(changes)},
        )
        return model.to_dto()

    def delete_rule(self, rule_id: UUID) -> None:
        model = self._get_model(rule_id)
        self._session.delete(model)
        self._session.flush()
        logger.info("rule_deleted", extra={"rule_id": str(rule_id), "rule_name": model.name})

    def ensure_default_rules(
        self,
        phase: PipelinePhase,
        defaults: Sequence[DefaultRuleDef],
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> tuple[PipelineRule, ...]:
        """Provision ``defaults`` for ``phase`` only if it has no active rules.

        Returns the rules created (empty when rules already existed).
        """
        phase = PipelinePhase(phase)
        if self.has_active(phase):
            logger.debug("default_rules_present", extra={"phase": phase.value})
            return ()

        created = tuple(
            self.create_rule(
                name=d.name,
                phase=phase,
                rule_type=d.rule_type,
                target=d.target,
                config=dict(d.config),
                priority=d.priority,
                description=d.description,
                actor_id=actor_id,
            )
            for d in defaults
            if PipelinePhase(d.phase) == phase
        )
        logger.info(
            "default_rules_provisioned",
            extra={"phase": phase.value, "rule_names": [r.name for r in created]},
        )
        return created

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _get_model(self, rule_id: UUID) -> PipelineRuleModel:
        model = self._session.get(PipelineRuleModel, rule_id)
        if model is None:
            raise RuleNotFoundError(str(rule_id))
        return model

    def _next_sequence(self) -> int:
        current = self._session.scalar(select(func.max(PipelineRuleModel.creation_seq)))
        return (current or 0) + 1

    def _validate(self, name: str, rule_type: str, config: dict[str, Any]) -> None:
        processor = self._registry.get(rule_type)
        validation = processor.validate_config(config)
        if not validation.ok:
            raise RuleConfigError(name, rule_type, validation.errors)
