"""Adapters: CSV parsing and the storage collaborator boundary."""

from asset_ingestion.adapters.base import CsvExtraction, StorageCollaborator
from asset_ingestion.adapters.csv_extractor import CsvExtractor
from asset_ingestion.adapters.local_storage import LocalStorageService

__all__ = [
    "CsvExtraction",
    "CsvExtractor",
    "LocalStorageService",
    "StorageCollaborator",
]
