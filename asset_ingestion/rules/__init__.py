"""Rule processors, registry, engine and persisted rule store."""

from asset_ingestion.rules.base import (
    ConfigValidation,
    ProcessingContext,
    ProcessingResult,
    RuleProcessor,
)
from asset_ingestion.rules.engine import RuleApplication, RuleEngine, RuleSource
from asset_ingestion.rules.registry import ProcessorRegistry, default_processor_registry
from asset_ingestion.rules.store import RuleStore

__all__ = [
    "ConfigValidation",
    "ProcessingContext",
    "ProcessingResult",
    "ProcessorRegistry",
    "RuleApplication",
    "RuleEngine",
    "RuleProcessor",
    "RuleSource",
    "RuleStore",
    "default_processor_registry",
]
