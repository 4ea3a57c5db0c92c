"""localvec: an embedded, file-backed vector index for documents.

A folder on disk holds vectors, metadata and document text. Documents are
chunked, embedded and ranked by cosine similarity with optional metadata
filters, and matches are rendered back into token-bounded text sections.

Public API:
- LocalIndex
- DocumentCatalog
- TextSplitter
"""

from .chunking import TextSplitter, TextSplitterConfig
from .config import LocalVecConfig
from .documents import DocumentCatalog, DocumentResult, LocalDocument
from .store import LocalIndex

__all__ = [
    "DocumentCatalog",
    "DocumentResult",
    "LocalDocument",
    "LocalIndex",
    "LocalVecConfig",
    "TextSplitter",
    "TextSplitterConfig",
]
