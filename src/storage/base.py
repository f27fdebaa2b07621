"""
Abstract base class for storage backends.

The ledger core is purely in-memory; a backend persists the snapshot
produced by RoyaltyDistributor.to_dict() so state survives restarts.
"""

from abc import ABC, abstractmethod
from typing import Any


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class StorageReadError(StorageError):
    """Raised when reading from storage fails."""
    pass


class StorageWriteError(StorageError):
    """Raised when writing to storage fails."""
    pass


class StorageBackend(ABC):
    """
    Abstract base class for ledger storage backends.

    All backends store and return whole-ledger snapshots as plain dicts.
    """

    @abstractmethod
    def load_ledger(self) -> dict[str, Any] | None:
        """
        Load the ledger snapshot from storage.

        Returns:
            Dictionary containing ledger data, or None if nothing is stored.

        Raises:
            StorageReadError: If reading fails
        """
        pass

    @abstractmethod
    def save_ledger(self, ledger_data: dict[str, Any]) -> None:
        """
        Save the ledger snapshot to storage.

        Args:
            ledger_data: Dictionary containing the complete ledger state

        Raises:
            StorageWriteError: If writing fails
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the storage backend is available and ready.

        Returns:
            True if storage is accessible, False otherwise
        """
        pass

    def get_info(self) -> dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend type and status
        """
        return {
            "backend_type": self.__class__.__name__,
            "available": self.is_available(),
        }

    def get_payment_count(self) -> int:
        """Number of stored payment records."""
        ledger_data = self.load_ledger()
        if ledger_data:
            return len(ledger_data.get("royalties", []))
        return 0

    def close(self) -> None:
        """Release resources. Nothing to do for file and memory backends."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
