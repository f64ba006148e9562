"""
asset_config -- single public entrypoint for pipeline configuration.

Responsibility:
    ``get_pipeline_settings()`` is the only way runtime code obtains
    configuration.  YAML loading is internal to this package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing or malformed settings.

Audit relevance:
    Every call emits a ``PIPELINE_CONFIG_TRACE`` log entry with the
    configuration name, version, and checksum so each import job can be
    tied back to the settings that governed it.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from asset_config.loader import load_settings
from asset_config.schema import DefaultRuleDef, PipelineSettings
from asset_kernel.logging_config import get_logger

__all__ = [
    "DefaultRuleDef",
    "PipelineSettings",
    "get_pipeline_settings",
    "DEFAULT_CONFIG_PATH",
    "DATABASE_URL_ENV",
]

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default" / "pipeline.yaml"
DATABASE_URL_ENV = "ASSET_PIPELINE_DATABASE_URL"


def get_pipeline_settings(config_path: Path | None = None) -> PipelineSettings:
    """Load pipeline settings, applying the database URL environment override.

    Args:
        config_path: Override path to the YAML file.  Defaults to
            asset_config/sets/default/pipeline.yaml.
    """
    settings = load_settings(config_path or DEFAULT_CONFIG_PATH)

    override = os.environ.get(DATABASE_URL_ENV)
    if override:
        settings = dataclasses.replace(settings, database_url=override)

    _logger.info(
        "PIPELINE_CONFIG_TRACE",
        extra={
            "trace_type": "PIPELINE_CONFIG_TRACE",
            "config_name": settings.name,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "batch_size": settings.batch_size,
            "default_rule_count": len(settings.default_rules),
            "database_url_overridden": bool(override),
        },
    )
    return settings
