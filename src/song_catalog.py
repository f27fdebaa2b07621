"""
SongSplit - Song Catalog

Loads pre-seeded songs for a fresh ledger from a YAML file.

Format:
    songs:
      - song_id: 1
        title: Test Song
        artist: deployer
        ipfs_hash: QmTestHash...
        created_at: 1000
        contributors:
          - {contributor: wallet_1, percentage: 60}
          - {contributor: wallet_2, percentage: 40}

Percentage sums are not checked here; the ledger validates them lazily
when a song is distributed.
"""

import logging
import os
from pathlib import Path

import yaml

from royalty_distributor import Song

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent.parent / "config" / "songs.yaml"


class CatalogError(ValueError):
    """Raised when a song catalog file is malformed."""
    pass


def load_catalog(path: str | Path) -> list[Song]:
    """
    Load songs from a YAML catalog.

    Args:
        path: Catalog file path

    Returns:
        Songs in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        CatalogError: If the YAML or an entry is invalid, or ids repeat
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in song catalog {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("songs"), list):
        raise CatalogError(f"Song catalog {path} must contain a 'songs' list")

    songs: list[Song] = []
    seen: set[int] = set()
    for index, entry in enumerate(data["songs"]):
        if not isinstance(entry, dict):
            raise CatalogError(f"Catalog entry #{index} must be a mapping")
        try:
            song = Song.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise CatalogError(f"Catalog entry #{index}: {e}") from e
        if song.song_id in seen:
            raise CatalogError(f"Duplicate song id {song.song_id} in catalog")
        if not song.is_distributable:
            logger.warning(
                "Song %s percentages sum to %d; it will be rejected at distribution",
                song.song_id,
                song.total_percentage,
            )
        seen.add(song.song_id)
        songs.append(song)

    logger.info("Loaded %d songs from %s", len(songs), path)
    return songs


def load_configured_catalog() -> list[Song]:
    """
    Load the catalog named by SONGSPLIT_CATALOG_FILE.

    Falls back to the bundled config/songs.yaml; returns no songs if
    neither exists.
    """
    configured = os.getenv("SONGSPLIT_CATALOG_FILE")
    path = Path(configured) if configured else DEFAULT_CATALOG_PATH
    if not path.exists():
        if configured:
            raise FileNotFoundError(f"Song catalog not found at {path}")
        return []
    return load_catalog(path)
