"""Storage abstractions for Tasktrail MCP."""

from .documents import DocumentNotFoundError, DocumentStore, DocumentStoreError, FileDocumentStore

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "DocumentStoreError",
    "FileDocumentStore",
]
