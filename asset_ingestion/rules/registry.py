"""
ProcessorRegistry -- closed mapping of rule type tags to processors.

Contract:
    ``register()`` adds a processor; raises ValueError on duplicate.
    ``get()`` retrieves by rule type; raises ProcessorNotRegisteredError.
    ``find()`` returns None instead of raising (used by the rule engine,
    which treats a missing processor as a warning).
    ``default_processor_registry()`` builds the registry of every built-in
    processor.  Build it once and inject it; nothing looks it up globally.
"""

from __future__ import annotations

from asset_kernel.exceptions import ProcessorNotRegisteredError

from asset_ingestion.rules.base import RuleProcessor
from asset_ingestion.rules.processors import BUILTIN_PROCESSORS


class ProcessorRegistry:
    """Registry mapping rule_type strings to RuleProcessor implementations."""

    def __init__(self) -> None:
        self._processors: dict[str, RuleProcessor] = {}

    def register(self, processor: RuleProcessor) -> None:
        """Register a processor implementation.

        Raises:
            ValueError: If a processor for the same rule_type is already registered.
        """
        if processor.rule_type in self._processors:
            raise ValueError(
                f"Processor for rule type '{processor.rule_type}' is already registered"
            )
        self._processors[processor.rule_type] = processor

    def get(self, rule_type: str) -> RuleProcessor:
        """Retrieve the processor for a rule type.

        Raises:
            ProcessorNotRegisteredError: If none is registered.
        """
        try:
            return self._processors[rule_type]
        except KeyError:
            raise ProcessorNotRegisteredError(rule_type, self.list_types()) from None

    def find(self, rule_type: str) -> RuleProcessor | None:
        return self._processors.get(rule_type)

    def list_types(self) -> tuple[str, ...]:
        """Return all registered rule types, sorted."""
        return tuple(sorted(self._processors.keys()))

    def __len__(self) -> int:
        return len(self._processors)

    def __contains__(self, rule_type: str) -> bool:
        return rule_type in self._processors


def default_processor_registry() -> ProcessorRegistry:
    """Create a registry holding one instance of every built-in processor."""
    registry = ProcessorRegistry()
    for processor_cls in BUILTIN_PROCESSORS:
        registry.register(processor_cls())
    return registry
