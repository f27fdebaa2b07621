"""
Shared state for the SongSplit API.

Holds the ledger instance and its storage backend. Blueprints read
`state.ledger` at call time, so init_ledger() can swap both in.

Every mutation goes through apply_mutation(), which persists the result
before returning it and rolls the ledger back if persistence fails.
"""

import logging
import os
import threading
from collections.abc import Callable
from typing import Any

from royalty_distributor import DEFAULT_ADMIN, LedgerResponse, RoyaltyDistributor
from song_catalog import load_configured_catalog
from storage import StorageBackend, StorageError, StorageReadError, get_storage_backend

logger = logging.getLogger(__name__)

# ============================================================
# Shared State
# ============================================================

ledger: RoyaltyDistributor = RoyaltyDistributor(admin=os.getenv("SONGSPLIT_ADMIN", DEFAULT_ADMIN))
storage: StorageBackend | None = None

# One mutate-and-save unit at a time
_persist_lock = threading.RLock()


def init_ledger(backend: StorageBackend | None = None) -> RoyaltyDistributor:
    """
    Load the ledger from storage, or create a fresh one.

    A fresh ledger gets SONGSPLIT_ADMIN as admin and is seeded from
    the configured song catalog, then saved immediately.

    Args:
        backend: Storage backend (defaults to get_storage_backend())

    Returns:
        The active ledger

    Raises:
        StorageReadError: If the stored snapshot can't be read or is corrupt
        StorageWriteError: If a fresh ledger can't be saved
    """
    global ledger, storage

    storage = backend or get_storage_backend()
    data = storage.load_ledger()

    if data:
        try:
            ledger = RoyaltyDistributor.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StorageReadError(f"Corrupt ledger snapshot: {e}") from e
        logger.info(
            "Loaded ledger with %d payments",
            ledger.get_payment_counter().value,
            extra={"backend": storage.__class__.__name__},
        )
    else:
        ledger = RoyaltyDistributor(
            admin=os.getenv("SONGSPLIT_ADMIN", DEFAULT_ADMIN),
            songs=load_configured_catalog(),
        )
        logger.info("No existing ledger data found. Starting fresh.")
        save_ledger()

    return ledger


def save_ledger() -> None:
    """
    Persist the current ledger snapshot.

    Raises:
        StorageWriteError: If the backend fails to write
    """
    if storage is None:
        return
    with _persist_lock:
        storage.save_ledger(ledger.to_dict())


def apply_mutation(operation: Callable[[RoyaltyDistributor], LedgerResponse]) -> LedgerResponse:
    """
    Run a ledger mutation and persist it as one unit.

    Usage:
        response = apply_mutation(lambda lg: lg.distribute("deployer", 1, 1000))

    Args:
        operation: Called with the active ledger

    Returns:
        The operation's LedgerResponse, saved if ok

    Raises:
        StorageError: If saving fails; the ledger is rolled back first
    """
    with _persist_lock:
        target = ledger
        checkpoint = target.checkpoint()
        response = operation(target)
        if not response.ok:
            return response
        try:
            save_ledger()
        except StorageError:
            target.rollback(checkpoint)
            logger.error("Ledger change not persisted; rolled back")
            raise
        return response


def get_storage_info() -> dict[str, Any]:
    if storage is None:
        return {"status": "unconfigured"}
    info = storage.get_info()
    info["status"] = "ok" if info.get("available") else "unavailable"
    return info
