"""
Configuration Loader (``asset_config.loader``).

Responsibility
--------------
Loads the pipeline YAML file and parses it into a frozen
``PipelineSettings``.  Runtime callers go through
``asset_config.get_pipeline_settings()`` rather than calling this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-positive limits or unknown default-rule phase  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from asset_config.schema import DefaultRuleDef, PipelineSettings

_KNOWN_PHASES = frozenset({"EXTRACT", "VALIDATE", "CLEAN", "TRANSFORM", "MAP", "LOAD"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_default_rules(data: dict[str, Any]) -> tuple[DefaultRuleDef, ...]:
    """Parse the ``default_rules`` section, keyed by phase name."""
    rules: list[DefaultRuleDef] = []
    for phase, entries in (data or {}).items():
        phase_name = str(phase).upper()
        if phase_name not in _KNOWN_PHASES:
            raise ValueError(f"Unknown phase in default_rules: {phase!r}")
        for entry in entries or ():
            rules.append(
                DefaultRuleDef(
                    name=entry["name"],
                    phase=phase_name,
                    rule_type=str(entry["rule_type"]).upper(),
                    target=entry["target"],
                    priority=int(entry.get("priority", 0)),
                    config=dict(entry.get("config") or {}),
                    description=entry.get("description"),
                )
            )
    return tuple(rules)


def _positive(name: str, value: Any) -> int:
    ivalue = int(value)
    if ivalue <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return ivalue


def _upper_map(data: dict[str, Any] | None) -> dict[str, str]:
    return {str(k).strip().upper(): str(v).strip().upper() for k, v in (data or {}).items()}


def parse_settings(data: dict[str, Any]) -> PipelineSettings:
    """Parse a loaded YAML dict into ``PipelineSettings``."""
    pipeline = data["pipeline"]
    limits = data.get("limits") or {}
    validation = data.get("validation") or {}
    mapping = data.get("mapping") or {}

    return PipelineSettings(
        name=pipeline["name"],
        version=int(pipeline["version"]),
        database_url=pipeline["database_url"],
        batch_size=_positive("batch_size", limits.get("batch_size", 100)),
        cleanup_hours=_positive("cleanup_hours", limits.get("cleanup_hours", 24)),
        preview_rows=_positive("preview_rows", limits.get("preview_rows", 10)),
        preview_value_length=_positive(
            "preview_value_length", limits.get("preview_value_length", 100)
        ),
        raw_value_length=_positive("raw_value_length", limits.get("raw_value_length", 200)),
        sample_limit=_positive("sample_limit", limits.get("sample_limit", 5)),
        max_transformations=_positive(
            "max_transformations", limits.get("max_transformations", 50)
        ),
        required_fields=tuple(validation.get("required_fields") or ("Asset Tag", "Asset Name")),
        valid_statuses=tuple(s.upper() for s in validation.get("valid_statuses") or ()),
        valid_conditions=tuple(c.upper() for c in validation.get("valid_conditions") or ()),
        max_manufacturer_length=_positive(
            "max_manufacturer_length", validation.get("max_manufacturer_length", 100)
        ),
        default_status=str(mapping.get("default_status", "ACTIVE")).upper(),
        default_condition=str(mapping.get("default_condition", "GOOD")).upper(),
        field_map={str(k): str(v) for k, v in (mapping.get("field_map") or {}).items()},
        status_map=_upper_map(mapping.get("status_map")),
        condition_map=_upper_map(mapping.get("condition_map")),
        default_rules=parse_default_rules(data.get("default_rules") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> PipelineSettings:
    """Load and parse one pipeline YAML file."""
    return parse_settings(load_yaml_file(path))
