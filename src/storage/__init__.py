"""
Storage abstraction layer for SongSplit.

Pluggable persistence for ledger snapshots:

- JSON file (default)
- Memory (for testing)

Usage:
    from storage import get_storage_backend

    storage = get_storage_backend()
    storage.save_ledger(ledger.to_dict())
    data = storage.load_ledger()
"""

import os

from storage.base import StorageBackend, StorageError, StorageReadError, StorageWriteError
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

__all__ = [
    "JSONFileStorage",
    "MemoryStorage",
    "StorageBackend",
    "StorageError",
    "StorageReadError",
    "StorageWriteError",
    "get_storage_backend",
]


def get_storage_backend() -> StorageBackend:
    """
    Get the configured storage backend based on environment variables.

    Environment variables:
        STORAGE_BACKEND: Backend type ("json", "memory")
        LEDGER_DATA_FILE: Path for JSON file storage (default: ledger_data.json)

    Returns:
        Configured StorageBackend instance
    """
    backend_type = os.getenv("STORAGE_BACKEND", "json").lower()

    if backend_type == "json":
        return JSONFileStorage(os.getenv("LEDGER_DATA_FILE", "ledger_data.json"))

    if backend_type == "memory":
        return MemoryStorage()

    raise StorageError(f"Unknown storage backend: {backend_type}")
