"""
SongSplit - Royalty Distributor

Single-ledger accounting engine that splits incoming payments for a song
among its registered contributors by fixed percentage shares.

Key Concepts:
- Songs carry an ordered contributor table (identity, integer percentage)
- Percentages are validated lazily: a song is distributable only while its
  contributor percentages sum to exactly 100
- Shares use integer floor division; the residual is an accepted rounding loss
- A distribution that would credit zero to any contributor is rejected whole
- Every successful distribution gets a global, strictly increasing payment id
- Only the admin may pause/unpause the ledger or hand over admin rights

Every operation returns a LedgerResponse(ok, value). Business failures are
never raised; the value then carries a stable numeric ErrorCode.

Usage:
    ledger = RoyaltyDistributor(admin="deployer", songs=[song])
    ok, payment_id = ledger.distribute("deployer", 1, 1000)
    ledger.get_contributor_balance(1, "wallet_1").value  # -> 600
"""

import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

from monitoring.metrics import metrics

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_ADMIN = "deployer"
TOTAL_PERCENTAGE = 100
MAX_EVENTS = 10000


# =============================================================================
# Error Codes
# =============================================================================


class ErrorCode(IntEnum):
    """
    Stable numeric failure codes.

    104 and 105 are reserved and must never be reassigned; external
    integrations pattern-match on these values.
    """

    UNAUTHORIZED = 100  # Caller is not the admin
    PAUSED = 101  # Ledger is paused
    INVALID_SONG = 102  # Unknown song, bad contributor table, or duplicate id
    INVALID_AMOUNT = 103  # Amount is not a positive integer
    DISTRIBUTION_FAILED = 106  # Some contributor's share would truncate to zero


# =============================================================================
# Data Classes
# =============================================================================


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Contributor:
    """One row of a song's split table."""

    contributor: str
    percentage: int

    def __post_init__(self):
        if not isinstance(self.contributor, str) or not self.contributor:
            raise ValueError("Contributor identity must be a non-empty string")
        if not _is_int(self.percentage):
            raise TypeError("Contributor percentage must be an integer")
        if self.percentage < 0 or self.percentage > TOTAL_PERCENTAGE:
            raise ValueError(f"Contributor percentage must be between 0 and {TOTAL_PERCENTAGE}")

    @classmethod
    def coerce(cls, item: Any) -> "Contributor":
        """Build from a Contributor, a {contributor, percentage} dict or a pair."""
        if isinstance(item, Contributor):
            return item
        if isinstance(item, dict):
            return cls(contributor=item.get("contributor"), percentage=item.get("percentage"))
        if isinstance(item, (list, tuple)) and len(item) == 2:
            return cls(contributor=item[0], percentage=item[1])
        raise TypeError(f"Cannot interpret contributor entry: {item!r}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"contributor": self.contributor, "percentage": self.percentage}


@dataclass(frozen=True)
class Song:
    """A registered, distributable song. Immutable once registered."""

    song_id: int
    title: str
    artist: str
    ipfs_hash: str
    contributors: tuple[Contributor, ...] = ()
    created_at: int = 0

    def __post_init__(self):
        if not _is_int(self.song_id):
            raise TypeError("Song id must be an integer")
        for name in ("title", "artist", "ipfs_hash"):
            if not isinstance(getattr(self, name), str):
                raise TypeError(f"Song {name} must be a string")
        if not _is_int(self.created_at):
            raise TypeError("Song created_at must be an integer")
        if isinstance(self.contributors, (str, bytes, dict)) or not isinstance(self.contributors, Iterable):
            raise TypeError("Song contributors must be a list")
        # Normalise to an immutable tuple of Contributor rows
        object.__setattr__(
            self, "contributors", tuple(Contributor.coerce(c) for c in self.contributors)
        )

    @property
    def total_percentage(self) -> int:
        """Sum of all contributor percentages."""
        return sum(c.percentage for c in self.contributors)

    @property
    def is_distributable(self) -> bool:
        return self.total_percentage == TOTAL_PERCENTAGE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "song_id": self.song_id,
            "title": self.title,
            "artist": self.artist,
            "ipfs_hash": self.ipfs_hash,
            "contributors": [c.to_dict() for c in self.contributors],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Song":
        """Create from dictionary."""
        return cls(
            song_id=data.get("song_id"),
            title=data.get("title", ""),
            artist=data.get("artist", ""),
            ipfs_hash=data.get("ipfs_hash", ""),
            contributors=data.get("contributors") or (),
            created_at=data.get("created_at", 0),
        )


@dataclass(frozen=True)
class PaymentRecord:
    """One successful distribution. Written once, never mutated."""

    amount: int
    timestamp: int
    distributor: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "amount": self.amount,
            "timestamp": self.timestamp,
            "distributor": self.distributor,
        }


@dataclass
class LedgerEvent:
    """Internal event for audit trail."""

    event_id: str
    event_type: str
    timestamp: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "data": self.data,
        }


def _serialize(value: Any) -> Any:
    if isinstance(value, ErrorCode):
        return int(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


@dataclass(frozen=True)
class LedgerResponse:
    """
    Discriminated operation result.

    ok=True carries the operation value; ok=False carries an ErrorCode.
    Unpacks like the (success, result) tuples used elsewhere:

        ok, value = ledger.pause("deployer")
    """

    ok: bool
    value: Any = None

    @classmethod
    def success(cls, value: Any = True) -> "LedgerResponse":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, code: ErrorCode) -> "LedgerResponse":
        return cls(ok=False, value=code)

    @property
    def error(self) -> ErrorCode | None:
        """The ErrorCode for failed responses, otherwise None."""
        if self.ok:
            return None
        return ErrorCode(self.value)

    def __iter__(self):
        return iter((self.ok, self.value))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the {ok, value} wire shape."""
        return {"ok": self.ok, "value": _serialize(self.value)}


def _now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Royalty Distributor
# =============================================================================


class RoyaltyDistributor:
    """
    Song royalty ledger.

    All state is owned by the instance and guarded by a single re-entrant
    lock. Mutations run start to finish under the lock, and reads take it
    too, so no reader ever sees half of a distribution.
    """

    def __init__(
        self,
        admin: str = DEFAULT_ADMIN,
        songs: Iterable[Song] | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Initialize the ledger in Active mode.

        Args:
            admin: Deploying identity, the initial admin
            songs: Optional songs to pre-seed the registry with
            clock: Millisecond timestamp source (defaults to wall clock)
        """
        self._lock = threading.RLock()
        self._clock = clock or _now_ms
        self._last_timestamp = 0

        # Ledger state
        self._admin = admin
        self._paused = False
        self._payment_counter = 0

        # Registry
        self._songs: dict[int, Song] = {}

        # History and balances, keyed by composite tuples
        self._royalties: dict[tuple[int, int], PaymentRecord] = {}
        self._contributor_balances: dict[tuple[int, str], int] = {}
        self._total_balances: dict[str, int] = {}

        # Audit trail
        self._events: list[LedgerEvent] = []

        for song in songs or ():
            if song.song_id in self._songs:
                raise ValueError(f"Duplicate song id in seed data: {song.song_id}")
            self._songs[song.song_id] = song

    # =========================================================================
    # Registry
    # =========================================================================

    def get_song(self, song_id: int) -> Song | None:
        """Look up a song; no side effects."""
        with self._lock:
            return self._songs.get(song_id)

    def register_song(
        self,
        caller: str,
        song_id: int,
        title: str,
        artist: str,
        ipfs_hash: str,
        contributors: Iterable[Any],
        created_at: int | None = None,
    ) -> LedgerResponse:
        """
        Register a new song.

        The percentage sum is not checked here; a song whose
        table does not total 100 is stored but rejected at distribution.

        Returns:
            ok=True with the song id, or UNAUTHORIZED / INVALID_SONG
        """
        with self._lock:
            if caller != self._admin:
                return self._reject("register_song", ErrorCode.UNAUTHORIZED, caller=caller, song_id=song_id)

            try:
                song = Song(
                    song_id=song_id,
                    title=title,
                    artist=artist,
                    ipfs_hash=ipfs_hash,
                    contributors=contributors,
                    created_at=self._next_timestamp() if created_at is None else created_at,
                )
            except (TypeError, ValueError) as e:
                logger.debug("Rejected malformed song %r: %s", song_id, e)
                return self._reject("register_song", ErrorCode.INVALID_SONG, caller=caller, song_id=song_id)

            if song.song_id in self._songs:
                return self._reject("register_song", ErrorCode.INVALID_SONG, caller=caller, song_id=song_id)

            self._songs[song.song_id] = song
            self._emit_event("SongRegistered", {
                "song_id": song.song_id,
                "title": song.title,
                "contributors": len(song.contributors),
                "total_percentage": song.total_percentage,
            })
            logger.info("Registered song %s (%s)", song.song_id, song.title)
            return LedgerResponse.success(song.song_id)

    # =========================================================================
    # Distribution Engine
    # =========================================================================

    def distribute(self, caller: str, song_id: int, amount: int) -> LedgerResponse:
        """
        Split `amount` among the song's contributors.

        Checks run in order, first failure wins:
        1. Ledger paused -> PAUSED
        2. amount <= 0 -> INVALID_AMOUNT
        3. Unknown song -> INVALID_SONG
        4. Percentages do not sum to 100 -> INVALID_SONG
        5. Any share floors to zero -> DISTRIBUTION_FAILED

        Returns:
            ok=True with the new payment id, or the failing ErrorCode
        """
        with self._lock:
            started = time.perf_counter()

            if self._paused:
                return self._reject("distribute", ErrorCode.PAUSED, caller=caller, song_id=song_id)

            code, shares = self._split(song_id, amount)
            if code is not None:
                return self._reject("distribute", code, caller=caller, song_id=song_id)

            # Nothing below can fail; the whole block is one unit under the lock
            for contributor, share in shares:
                key = (song_id, contributor)
                self._contributor_balances[key] = self._contributor_balances.get(key, 0) + share
                self._total_balances[contributor] = self._total_balances.get(contributor, 0) + share

            payment_id = self._payment_counter
            record = PaymentRecord(amount=amount, timestamp=self._next_timestamp(), distributor=caller)
            self._royalties[(song_id, payment_id)] = record
            self._payment_counter += 1

            distributed = sum(share for _, share in shares)
            self._emit_event("RoyaltiesDistributed", {
                "song_id": song_id,
                "payment_id": payment_id,
                "amount": amount,
                "distributed": distributed,
                "residual": amount - distributed,
                "distributor": caller,
            })

            metrics.increment("royalty_distributions_total")
            metrics.increment("royalty_amount_distributed_total", distributed)
            metrics.timing("royalty_distribution_duration_ms", (time.perf_counter() - started) * 1000)
            logger.info(
                "Distributed %d for song %s as payment %d",
                amount,
                song_id,
                payment_id,
                extra={"caller": caller, "residual": amount - distributed},
            )
            return LedgerResponse.success(payment_id)

    def preview_distribution(self, song_id: int, amount: int) -> LedgerResponse:
        """
        Dry-run the share computation without touching state.

        Ignores the pause flag. Duplicate contributors are summed.

        Returns:
            ok=True with {contributor: share}, or the ErrorCode distribute would return
        """
        with self._lock:
            code, shares = self._split(song_id, amount)
            if code is not None:
                return LedgerResponse.failure(code)

            preview: dict[str, int] = {}
            for contributor, share in shares:
                preview[contributor] = preview.get(contributor, 0) + share
            return LedgerResponse.success(preview)

    def _split(self, song_id: int, amount: int) -> tuple[ErrorCode | None, list[tuple[str, int]]]:
        """Validate and compute per-row shares. Pure; caller holds the lock."""
        if not _is_int(amount) or amount <= 0:
            return ErrorCode.INVALID_AMOUNT, []

        song = self._songs.get(song_id)
        if song is None:
            return ErrorCode.INVALID_SONG, []
        if not song.is_distributable:
            return ErrorCode.INVALID_SONG, []

        shares = []
        for row in song.contributors:
            share = (amount * row.percentage) // TOTAL_PERCENTAGE
            if share <= 0:
                return ErrorCode.DISTRIBUTION_FAILED, []
            shares.append((row.contributor, share))
        return None, shares

    # =========================================================================
    # Access Control
    # =========================================================================

    def pause(self, caller: str) -> LedgerResponse:
        """Switch to Paused mode. Admin only."""
        with self._lock:
            if caller != self._admin:
                return self._reject("pause", ErrorCode.UNAUTHORIZED, caller=caller)
            self._paused = True
            self._emit_event("Paused", {"by": caller})
            logger.info("Ledger paused")
            return LedgerResponse.success(True)

    def unpause(self, caller: str) -> LedgerResponse:
        """Switch back to Active mode. Admin only."""
        with self._lock:
            if caller != self._admin:
                return self._reject("unpause", ErrorCode.UNAUTHORIZED, caller=caller)
            self._paused = False
            self._emit_event("Unpaused", {"by": caller})
            logger.info("Ledger unpaused")
            return LedgerResponse.success(True)

    def set_admin(self, caller: str, new_admin: str) -> LedgerResponse:
        """Hand admin rights to `new_admin`. Effective immediately."""
        with self._lock:
            if caller != self._admin:
                return self._reject("set_admin", ErrorCode.UNAUTHORIZED, caller=caller)
            previous = self._admin
            self._admin = new_admin
            self._emit_event("AdminChanged", {"previous": previous, "new_admin": new_admin})
            logger.info("Admin transferred", extra={"previous_admin": previous, "new_admin": new_admin})
            return LedgerResponse.success(True)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_royalty_history(self, song_id: int, payment_id: int) -> LedgerResponse:
        with self._lock:
            return LedgerResponse.success(self._royalties.get((song_id, payment_id)))

    def get_contributor_balance(self, song_id: int, contributor: str) -> LedgerResponse:
        with self._lock:
            return LedgerResponse.success(self._contributor_balances.get((song_id, contributor), 0))

    def get_total_balance(self, contributor: str) -> LedgerResponse:
        """Aggregate balance of a contributor across every song."""
        with self._lock:
            return LedgerResponse.success(self._total_balances.get(contributor, 0))

    def get_song_payments(self, song_id: int) -> LedgerResponse:
        """All payments recorded for a song as (payment_id, record), oldest first."""
        with self._lock:
            payments = sorted(
                (payment_id, record)
                for (sid, payment_id), record in self._royalties.items()
                if sid == song_id
            )
            return LedgerResponse.success(payments)

    def is_paused(self) -> LedgerResponse:
        with self._lock:
            return LedgerResponse.success(self._paused)

    def get_admin(self) -> LedgerResponse:
        with self._lock:
            return LedgerResponse.success(self._admin)

    def get_payment_counter(self) -> LedgerResponse:
        with self._lock:
            return LedgerResponse.success(self._payment_counter)

    def get_events(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent audit events, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            return [e.to_dict() for e in reversed(self._events[-limit:])]

    def get_statistics(self) -> dict[str, Any]:
        """Get ledger statistics."""
        with self._lock:
            return {
                "admin": self._admin,
                "paused": self._paused,
                "payment_counter": self._payment_counter,
                "songs": {
                    "total": len(self._songs),
                    "distributable": sum(1 for s in self._songs.values() if s.is_distributable),
                },
                "payments": {
                    "total": len(self._royalties),
                    "total_amount": sum(r.amount for r in self._royalties.values()),
                },
                "contributors": len(self._total_balances),
                "total_credited": sum(self._total_balances.values()),
            }

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of the full ledger state."""
        with self._lock:
            return {
                "admin": self._admin,
                "paused": self._paused,
                "payment_counter": self._payment_counter,
                "songs": [song.to_dict() for _, song in sorted(self._songs.items())],
                "royalties": [
                    {"song_id": song_id, "payment_id": payment_id, **record.to_dict()}
                    for (song_id, payment_id), record in sorted(self._royalties.items())
                ],
                "contributor_balances": [
                    {"song_id": song_id, "contributor": contributor, "amount": amount}
                    for (song_id, contributor), amount in sorted(self._contributor_balances.items())
                ],
                "total_balances": dict(sorted(self._total_balances.items())),
            }

    def checkpoint(self) -> dict[str, Any]:
        """Capture state and audit trail so a later rollback() can undo mutations."""
        with self._lock:
            return {
                "state": self.to_dict(),
                "events": list(self._events),
                "last_timestamp": self._last_timestamp,
            }

    def rollback(self, checkpoint: dict[str, Any]) -> None:
        """
        Restore the ledger in place to a checkpoint() result.

        Used when a mutation was applied but could not be persisted.
        """
        restored = RoyaltyDistributor.from_dict(checkpoint["state"], clock=self._clock)
        with self._lock:
            self._admin = restored._admin
            self._paused = restored._paused
            self._payment_counter = restored._payment_counter
            self._songs = restored._songs
            self._royalties = restored._royalties
            self._contributor_balances = restored._contributor_balances
            self._total_balances = restored._total_balances
            self._events = list(checkpoint["events"])
            self._last_timestamp = checkpoint["last_timestamp"]
            logger.warning("Ledger rolled back to payment counter %d", self._payment_counter)

    @classmethod
    def from_dict(cls, data: dict[str, Any], clock: Callable[[], int] | None = None) -> "RoyaltyDistributor":
        """Rebuild a ledger from a `to_dict` snapshot."""
        ledger = cls(
            admin=data.get("admin", DEFAULT_ADMIN),
            songs=[Song.from_dict(s) for s in data.get("songs", [])],
            clock=clock,
        )
        ledger._paused = bool(data.get("paused", False))
        ledger._payment_counter = int(data.get("payment_counter", 0))

        for row in data.get("royalties", []):
            record = PaymentRecord(
                amount=int(row["amount"]),
                timestamp=int(row["timestamp"]),
                distributor=row["distributor"],
            )
            ledger._royalties[(int(row["song_id"]), int(row["payment_id"]))] = record
            ledger._last_timestamp = max(ledger._last_timestamp, record.timestamp)

        for row in data.get("contributor_balances", []):
            ledger._contributor_balances[(int(row["song_id"]), row["contributor"])] = int(row["amount"])

        ledger._total_balances = {k: int(v) for k, v in data.get("total_balances", {}).items()}
        return ledger

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _next_timestamp(self) -> int:
        # Never go backwards, even if the wall clock does
        now = int(self._clock())
        if now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return now

    def _reject(self, operation: str, code: ErrorCode, **context: Any) -> LedgerResponse:
        metrics.increment(
            "royalty_rejections_total",
            labels={"operation": operation, "code": str(int(code))},
        )
        if code == ErrorCode.UNAUTHORIZED:
            logger.warning("Unauthorized %s attempt", operation, extra=context)
        else:
            logger.debug("%s rejected with %s", operation, code.name, extra=context)
        return LedgerResponse.failure(code)

    def _emit_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Emit an internal event for audit trail."""
        event = LedgerEvent(
            event_id=f"evt_{secrets.token_hex(8)}",
            event_type=event_type,
            timestamp=datetime.now(UTC).isoformat(),
            data=data,
        )
        self._events.append(event)
        if len(self._events) > MAX_EVENTS:
            del self._events[: len(self._events) - MAX_EVENTS]
