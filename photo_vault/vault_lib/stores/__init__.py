"""Store classes for persistent data management."""
from .json_store import BaseJSONStore
from .library_store import LibraryStore

__all__ = [
    'BaseJSONStore',
    'LibraryStore',
]
