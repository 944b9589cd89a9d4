"""
Persistence backends and the store-to-backend sync adapter.
"""
from .adapter import SyncAdapter
from .backend import JsonFileBackend, MemoryBackend, PersistenceBackend

__all__ = ['SyncAdapter', 'PersistenceBackend', 'MemoryBackend', 'JsonFileBackend']
