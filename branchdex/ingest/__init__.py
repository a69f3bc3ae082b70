"""Branch snapshotting and document extraction."""

from branchdex.ingest.credentials import CredentialResolver, collect_tokens
from branchdex.ingest.extract import ExtractionStats, extract_document, write_documents
from branchdex.ingest.snapshot import BranchSnapshotter

__all__ = [
    "BranchSnapshotter",
    "CredentialResolver",
    "ExtractionStats",
    "collect_tokens",
    "extract_document",
    "write_documents",
]
