"""
JSON file storage backend.

Default backend: persists the ledger snapshot to a local JSON file,
written atomically through a temp file and rename.
"""

import json
import logging
import os
import shutil
import threading
from datetime import datetime
from typing import Any

from storage.base import StorageBackend, StorageReadError, StorageWriteError

logger = logging.getLogger(__name__)


class JSONFileStorage(StorageBackend):
    """
    JSON file storage backend.

    Thread-safe operations using a file lock.
    """

    def __init__(self, file_path: str = "ledger_data.json"):
        """
        Initialize JSON file storage.

        Args:
            file_path: Path to the JSON file
        """
        self.file_path = file_path
        self._lock = threading.Lock()

    def load_ledger(self) -> dict[str, Any] | None:
        """
        Load ledger data from the JSON file.

        Returns:
            Dictionary containing ledger data, or None if the file doesn't exist.

        Raises:
            StorageReadError: If reading fails
        """
        with self._lock:
            try:
                with open(self.file_path, encoding="utf-8") as f:
                    raw_data = f.read()
            except FileNotFoundError:
                return None
            except PermissionError as e:
                raise StorageReadError(f"Permission denied: {self.file_path}") from e
            except OSError as e:
                raise StorageReadError(f"Failed to read ledger: {e}") from e

            if not raw_data.strip():
                return None

            try:
                return json.loads(raw_data)
            except json.JSONDecodeError as e:
                raise StorageReadError(f"Invalid JSON format: {e}") from e

    def save_ledger(self, ledger_data: dict[str, Any]) -> None:
        """
        Save ledger data to the JSON file.

        Args:
            ledger_data: Dictionary containing the complete ledger state

        Raises:
            StorageWriteError: If writing fails
        """
        with self._lock:
            temp_path = f"{self.file_path}.tmp"
            try:
                data = json.dumps(ledger_data, indent=2, ensure_ascii=False)
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(data)
                os.replace(temp_path, self.file_path)
            except PermissionError as e:
                raise StorageWriteError(f"Permission denied: {self.file_path}") from e
            except (OSError, TypeError, ValueError) as e:
                raise StorageWriteError(f"Failed to save ledger: {e}") from e

    def is_available(self) -> bool:
        """True if the target directory exists and is writable."""
        directory = os.path.dirname(self.file_path) or "."
        if not os.path.exists(directory):
            return False
        return os.access(directory, os.W_OK)

    def get_info(self) -> dict[str, Any]:
        """Get storage backend information."""
        info = super().get_info()
        info.update({
            "file_path": self.file_path,
            "file_exists": os.path.exists(self.file_path),
        })

        if os.path.exists(self.file_path):
            try:
                stat = os.stat(self.file_path)
                info["file_size_bytes"] = stat.st_size
                info["last_modified"] = stat.st_mtime
            except OSError:
                pass

        return info

    def backup(self, backup_path: str | None = None) -> str:
        """
        Copy the ledger file aside.

        Args:
            backup_path: Destination (defaults to a timestamped sibling file)

        Returns:
            Path of the backup

        Raises:
            StorageError: If there is nothing to back up or the copy fails
        """
        if backup_path is None:
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = f"{self.file_path}.{stamp}.bak"

        with self._lock:
            if not os.path.exists(self.file_path):
                raise StorageReadError(f"No ledger file to back up: {self.file_path}")
            try:
                shutil.copy2(self.file_path, backup_path)
            except OSError as e:
                raise StorageWriteError(f"Backup failed: {e}") from e

        logger.info("Ledger backed up to %s", backup_path)
        return backup_path
