"""The six pipeline phases and the registry that holds them."""

from __future__ import annotations

from sqlalchemy.orm import Session

from asset_config.schema import PipelineSettings
from asset_kernel.domain.clock import Clock

from asset_ingestion.adapters.base import StorageCollaborator
from asset_ingestion.phases.base import (
    BasePhase,
    PhaseContext,
    PhaseDebug,
    PhaseMetrics,
    PhaseOutcome,
    PhaseProcessor,
    PhaseRegistry,
    PhaseWork,
)
from asset_ingestion.phases.clean import CleanPhase
from asset_ingestion.phases.extract import SAMPLE_FILE_ID, ExtractPhase
from asset_ingestion.phases.field_map import MapPhase
from asset_ingestion.phases.load import LoadPhase
from asset_ingestion.phases.transform import TransformPhase
from asset_ingestion.phases.validate import ValidatePhase
from asset_ingestion.rules.engine import RuleEngine
from asset_ingestion.rules.store import RuleStore


def default_phase_registry(
    session: Session,
    storage: StorageCollaborator,
    settings: PipelineSettings,
    rule_store: RuleStore,
    engine: RuleEngine,
    clock: Clock | None = None,
) -> PhaseRegistry:
    """Create a PhaseRegistry holding all six built-in phases."""
    registry = PhaseRegistry()
    registry.register(ExtractPhase(storage, clock=clock))
    registry.register(ValidatePhase(settings, clock=clock))
    registry.register(CleanPhase(rule_store, engine, settings, clock=clock))
    registry.register(TransformPhase(clock=clock))
    registry.register(MapPhase(settings, clock=clock))
    registry.register(LoadPhase(session, settings, clock=clock))
    return registry


__all__ = [
    "BasePhase",
    "CleanPhase",
    "ExtractPhase",
    "LoadPhase",
    "MapPhase",
    "PhaseContext",
    "PhaseDebug",
    "PhaseMetrics",
    "PhaseOutcome",
    "PhaseProcessor",
    "PhaseRegistry",
    "PhaseWork",
    "SAMPLE_FILE_ID",
    "TransformPhase",
    "ValidatePhase",
    "default_phase_registry",
]
