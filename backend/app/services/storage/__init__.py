"""Upload storage for proof-of-work images."""

from .file_store import FileStore, StoredFile, ALLOWED_MIME_TYPES

__all__ = ['FileStore', 'StoredFile', 'ALLOWED_MIME_TYPES']
