"""Tests for LocalStorageService: directory files and the assets table."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from asset_kernel.exceptions import FileNotFoundInStorageError

from asset_ingestion.adapters import LocalStorageService, StorageCollaborator
from asset_ingestion.models.asset import AssetModel


@pytest.fixture
def store(tmp_path, session, test_actor_id):
    (tmp_path / "assets.csv").write_text("Asset Tag\nA-1\n")
    (tmp_path / "notes.txt").write_text("ignore me")
    return LocalStorageService(tmp_path, session, test_actor_id)


def _count(session):
    return session.scalar(select(func.count()).select_from(AssetModel))


class TestFiles:
    def test_is_storage_collaborator(self, store):
        assert isinstance(store, StorageCollaborator)

    def test_fetch(self, store):
        assert store.fetch_file_bytes("assets.csv") == b"Asset Tag\nA-1\n"

    def test_missing_file(self, store):
        with pytest.raises(FileNotFoundInStorageError):
            store.fetch_file_bytes("other.csv")

    def test_path_escape_rejected(self, store):
        with pytest.raises(FileNotFoundInStorageError):
            store.fetch_file_bytes("../etc/passwd")

    def test_list_files_filters_extensions(self, store):
        files = store.list_files()
        assert [f.file_id for f in files] == ["assets.csv"]
        assert files[0].size_bytes == len(b"Asset Tag\nA-1\n")

    def test_list_files_missing_root(self, tmp_path, session, test_actor_id):
        assert LocalStorageService(tmp_path / "nope", session, test_actor_id).list_files() == ()


class TestBulkInsert:
    def test_inserts_assets(self, store, session):
        inserted = store.bulk_insert_records(
            [
                {
                    "asset_tag": "A-1",
                    "name": "Pump",
                    "status": "INACTIVE",
                    "purchase_cost": "1500.00",
                    "purchase_date": "2022-01-31",
                    "created_at": "ignored",
                },
                {"asset_tag": "A-2", "name": "Fan"},
            ]
        )
        assert inserted == 2

        pump = session.scalars(select(AssetModel).where(AssetModel.asset_tag == "A-1")).one()
        assert pump.status == "INACTIVE"
        assert pump.purchase_cost == Decimal("1500.00")
        assert pump.purchase_date == date(2022, 1, 31)
        fan = session.scalars(select(AssetModel).where(AssetModel.asset_tag == "A-2")).one()
        assert fan.condition == "GOOD"

    def test_duplicate_tag_rolls_back_whole_batch(self, store, session):
        store.bulk_insert_records([{"asset_tag": "A-1", "name": "Pump"}])
        with pytest.raises(IntegrityError):
            store.bulk_insert_records(
                [{"asset_tag": "A-9", "name": "New"}, {"asset_tag": "A-1", "name": "Dup"}]
            )
        assert _count(session) == 1

        # Outer transaction still usable
        assert store.bulk_insert_records([{"asset_tag": "A-9", "name": "New"}]) == 1
        assert _count(session) == 2

    def test_empty_batch(self, store):
        assert store.bulk_insert_records([]) == 0
