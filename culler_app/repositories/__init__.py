"""Repository package — expose all concrete repositories from one import."""
from .document_repository import DocumentRepository, make_project, migrate_document
from .snapshot_repository import SnapshotRepository

__all__ = [
    'DocumentRepository',
    'SnapshotRepository',
    'make_project',
    'migrate_document',
]
