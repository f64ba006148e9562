"""Asset pipeline ORM models (jobs, staging rows, rules, phase audit, assets)."""

from asset_ingestion.models.asset import AssetModel
from asset_ingestion.models.audit import PhaseResultModel
from asset_ingestion.models.rules import PipelineRuleModel
from asset_ingestion.models.staging import ImportJobModel, StagingAssetRowModel

__all__ = [
    "AssetModel",
    "ImportJobModel",
    "PhaseResultModel",
    "PipelineRuleModel",
    "StagingAssetRowModel",
]
