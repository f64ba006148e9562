"""
Asset ORM model -- the permanent asset store.

Approved staging rows are promoted here through the storage collaborator's
``bulk_insert_records``.  ``asset_tag`` is unique; inserting a duplicate tag
raises IntegrityError, which the approve path turns into a per-row failure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import TrackedBase, UUIDString


class AssetModel(TrackedBase):
    """A committed physical asset."""

    __tablename__ = "assets"

    asset_tag: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    building_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    floor: Mapped[str | None] = mapped_column(String(50), nullable=True)
    room_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="GOOD")
    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    purchase_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    source_job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Columns a record dict may populate; anything else is ignored.
    RECORD_FIELDS = (
        "asset_tag",
        "name",
        "description",
        "manufacturer",
        "model_number",
        "serial_number",
        "building_name",
        "floor",
        "room_number",
        "status",
        "condition",
        "purchase_date",
        "purchase_cost",
        "source_job_id",
    )

    @classmethod
    def from_record(cls, record: dict[str, Any], created_by_id: UUID) -> AssetModel:
        values: dict[str, Any] = {k: record.get(k) for k in cls.RECORD_FIELDS if record.get(k) is not None}
        if isinstance(values.get("purchase_date"), str):
            values["purchase_date"] = date.fromisoformat(values["purchase_date"])
        if values.get("purchase_cost") is not None and not isinstance(values["purchase_cost"], Decimal):
            values["purchase_cost"] = Decimal(str(values["purchase_cost"]))
        if isinstance(values.get("source_job_id"), str):
            values["source_job_id"] = UUID(values["source_job_id"])
        return cls(created_by_id=created_by_id, updated_by_id=None, **values)
