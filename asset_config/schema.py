"""
Configuration schema (``asset_config.schema``).

Frozen dataclasses produced by the loader.  Nothing here performs I/O; the
runtime reads these objects, never the YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DefaultRuleDef:
    """A rule provisioned automatically when a phase has no active rules."""

    name: str
    phase: str
    rule_type: str
    target: str
    priority: int
    config: dict[str, Any] = field(default_factory=dict)
    description: str | None = None


@dataclass(frozen=True)
class PipelineSettings:
    """Runtime settings for one pipeline deployment."""

    name: str
    version: int
    database_url: str

    batch_size: int = 100
    cleanup_hours: int = 24
    preview_rows: int = 10
    preview_value_length: int = 100
    raw_value_length: int = 200
    sample_limit: int = 5
    max_transformations: int = 50

    required_fields: tuple[str, ...] = ("Asset Tag", "Asset Name")
    valid_statuses: tuple[str, ...] = ()
    valid_conditions: tuple[str, ...] = ()
    max_manufacturer_length: int = 100

    default_status: str = "ACTIVE"
    default_condition: str = "GOOD"
    field_map: dict[str, str] = field(default_factory=dict)
    status_map: dict[str, str] = field(default_factory=dict)
    condition_map: dict[str, str] = field(default_factory=dict)

    default_rules: tuple[DefaultRuleDef, ...] = ()
    checksum: str = ""

    def default_rules_for(self, phase: str) -> tuple[DefaultRuleDef, ...]:
        return tuple(r for r in self.default_rules if r.phase == phase)
