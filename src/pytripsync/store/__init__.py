"""Document store adapters."""

from pytripsync.store.base import DocumentStore
from pytripsync.store.http import HttpDocumentStore
from pytripsync.store.memory import InMemoryDocumentStore

__all__ = ["DocumentStore", "HttpDocumentStore", "InMemoryDocumentStore"]
