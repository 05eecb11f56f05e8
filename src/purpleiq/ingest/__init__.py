"""PurpleIQ ingest pipeline: chunking, document readers and indexing."""

from purpleiq.ingest.base import BaseChunker
from purpleiq.ingest.boundary import BoundaryChunker, detect_section
from purpleiq.ingest.indexer import DocumentIndexer, IndexResult
from purpleiq.ingest.readers import UnsupportedDocumentError, read_document

__all__ = [
    "BaseChunker",
    "BoundaryChunker",
    "DocumentIndexer",
    "IndexResult",
    "UnsupportedDocumentError",
    "detect_section",
    "read_document",
]
