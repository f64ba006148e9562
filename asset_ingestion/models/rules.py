"""
PipelineRule ORM model.

Rules are independent of jobs and shared across all runs.  ``creation_seq`` is
assigned by RuleStore on insert and breaks priority ties in creation order
even when two rules share a created_at timestamp.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from asset_ingestion.domain.types import PipelineRule


class PipelineRuleModel(TrackedBase):
    """One persisted, phase-scoped, priority-ordered rule."""

    __tablename__ = "pipeline_rules"

    __table_args__ = (
        Index("ix_pipeline_rules_phase_active", "phase", "is_active", "priority"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phase: Mapped[str] = mapped_column(String(20), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target: Mapped[str] = mapped_column(String(200), nullable=False)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    priority: Mapped[int] = mapped_column(nullable=False, default=0)
    creation_seq: Mapped[int] = mapped_column(nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> PipelineRule:
        from asset_ingestion.domain.types import PipelinePhase, PipelineRule

        return PipelineRule(
            rule_id=self.id,
            name=self.name,
            phase=PipelinePhase(self.phase),
            rule_type=self.rule_type,
            target=self.target,
            config=dict(self.config or {}),
            priority=self.priority,
            is_active=self.is_active,
            description=self.description,
            created_at=self.created_at,
        )
