"""Document store layer.

The engine only talks to storage through the :class:`DocumentStore`
protocol; :class:`InMemoryDocumentStore` is the bundled implementation.
"""

from anprtoll.store.base import (
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    Filter,
    Increment,
    SetWrite,
    UpdateWrite,
    Write,
)
from anprtoll.store.memory import InMemoryDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentStore",
    "Filter",
    "InMemoryDocumentStore",
    "Increment",
    "SetWrite",
    "UpdateWrite",
    "Write",
]
