"""Exceptions raised by localvec.

Every error derives from :class:`LocalVecError` so callers can catch the whole
family at once. Errors that wrap a lower level failure keep it on ``cause`` and
are raised with ``from`` so the traceback chain is preserved.
"""

from __future__ import annotations


class LocalVecError(RuntimeError):
    """Base class for all localvec errors."""


class IndexNotFound(LocalVecError):
    def __init__(self, folder_path: str):
        super().__init__(f"Index does not exist: {folder_path}")
        self.folder_path = folder_path


class IndexAlreadyExists(LocalVecError):
    def __init__(self, folder_path: str):
        super().__init__(f"Index already exists: {folder_path}")
        self.folder_path = folder_path


class IndexCreationFailed(LocalVecError):
    def __init__(self, folder_path: str, cause: BaseException | None = None):
        super().__init__(f"Error creating index at {folder_path}: {cause}")
        self.folder_path = folder_path
        self.cause = cause


class UpdateAlreadyInProgress(LocalVecError):
    def __init__(self):
        super().__init__("Update already in progress")


class NoUpdateInProgress(LocalVecError):
    def __init__(self):
        super().__init__("No update in progress")


class ItemAlreadyExists(LocalVecError):
    def __init__(self, item_id: str):
        super().__init__(f"Item with id {item_id} already exists")
        self.item_id = item_id


class VectorRequired(LocalVecError):
    def __init__(self):
        super().__init__("Vector is required")


class EmbeddingsNotConfigured(LocalVecError):
    def __init__(self):
        super().__init__("Embeddings model not configured")


class EmbeddingGenerationFailed(LocalVecError):
    def __init__(self, reason: str):
        super().__init__(f"Error generating embeddings: {reason}")
        self.reason = reason


class PersistenceFailed(LocalVecError):
    def __init__(self, what: str, cause: BaseException):
        super().__init__(f"Error saving {what}: {cause}")
        self.what = what
        self.cause = cause


class _DocumentError(LocalVecError):
    action = "accessing"

    def __init__(self, uri: str, cause: BaseException):
        super().__init__(f"Error {self.action} for document \"{uri}\": {cause}")
        self.uri = uri
        self.cause = cause


class MetadataReadFailed(_DocumentError):
    action = "reading metadata"


class MetadataParseFailed(_DocumentError):
    action = "parsing metadata"


class TextReadFailed(_DocumentError):
    action = "reading text file"


class DocumentOperationFailed(_DocumentError):
    """A document upsert or delete failed after its update was opened."""

    action = "updating index"


class ConfigurationInvalid(LocalVecError, ValueError):
    """Invalid chunker or package configuration."""
