"""
In-memory storage backend.

Keeps the ledger snapshot in process memory, useful for:
- Unit testing
- Development
- Ephemeral ledgers
"""

import copy
import threading
from typing import Any

from storage.base import StorageBackend


class MemoryStorage(StorageBackend):
    """
    In-memory storage backend.

    All data is lost when the process exits. Thread-safe operations.
    """

    def __init__(self):
        self._data: dict[str, Any] | None = None
        # RLock: get_info calls get_payment_count while holding the lock
        self._lock = threading.RLock()

    def load_ledger(self) -> dict[str, Any] | None:
        """Return a deep copy of the stored snapshot, or None if empty."""
        with self._lock:
            if self._data is None:
                return None
            return copy.deepcopy(self._data)

    def save_ledger(self, ledger_data: dict[str, Any]) -> None:
        """Store a deep copy so later caller mutations don't leak in."""
        with self._lock:
            self._data = copy.deepcopy(ledger_data)

    def is_available(self) -> bool:
        """Memory storage is always available."""
        return True

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        with self._lock:
            info.update({
                "has_data": self._data is not None,
                "payment_count": self.get_payment_count(),
            })
        return info

    def get_payment_count(self) -> int:
        with self._lock:
            if self._data:
                return len(self._data.get("royalties", []))
            return 0

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._data = None
