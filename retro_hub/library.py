"""
Library store for discovered ROM files.

Owns the in-memory record sequence, the configured scan roots and the
per-platform / per-category counts, and persists them as a single JSON
snapshot. All state is guarded by one reader/writer lock:
- scan, save, toggle_favorite, record_play, add_scan_path: exclusive
- every query: shared

A scan rebuilds every record from scratch, so favorites and play history
are reset by a rescan. Persistence overwrites the snapshot in place (no
temp file + rename); a failed write leaves memory ahead of disk until the
next successful save.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import msgspec

from .constants import DEFAULT_CATEGORY, PLATFORM_EXTENSIONS, TITLE_REGION_TAGS
from .exceptions import (
    GameNotFoundError,
    PersistenceError,
    ScanPathNotADirectoryError,
    ScanPathNotFoundError,
    SnapshotDecodeError,
)
from .lib.rwlock import ReadWriteLock
from .logger import setup_logger
from .models import (
    ZERO_TIME,
    GameRecord,
    LibrarySnapshot,
    decode_json,
    encode_json,
    format_json,
)

logger = setup_logger()


# =============================================================================
# Identity & Title Derivation
# =============================================================================

def split_extension(filename: str) -> Tuple[str, str]:
    """
    Split a file name at its last dot.

    The extension keeps its dot; a name starting with a dot and containing
    no other dot is all extension (".nes" -> ("", ".nes")).
    """
    index = filename.rfind(".")
    if index < 0:
        return filename, ""
    return filename[:index], filename[index:]


def generate_id(path: str) -> str:
    """
    Derive a stable record ID from a file path.

    The ID is the upper-cased basename (without extension, at most 8
    characters) followed by one letter chosen by a 32-bit polynomial
    rolling hash of the full path:

        hash = (hash * 31 + code_point) mod 2**32
        suffix = chr(ord('A') + hash % 26)

    Only 26 suffixes exist, so two paths with the same truncated basename
    collide whenever their hashes agree mod 26.

    Args:
        path: Full path of the ROM file

    Returns:
        The derived ID, e.g. "SUPERMARK"
    """
    hash_value = 0
    for char in path:
        hash_value = (hash_value * 31 + ord(char)) & 0xFFFFFFFF

    base, _ = split_extension(os.path.basename(path))
    return base[:8].upper() + chr(ord("A") + hash_value % 26)


def clean_game_title(filename: str) -> str:
    """
    Turn a ROM file name into a display title.

    "Super_Mario-Bros (USA).nes" -> "Super Mario Bros"
    """
    title, _ = split_extension(filename)
    title = title.replace("_", " ").replace("-", " ")
    for tag in TITLE_REGION_TAGS:
        title = title.replace(tag, "")
    return title.strip()


def build_extension_index(platforms: Mapping[str, Sequence[str]]) -> Mapping[str, str]:
    """
    Invert a platform -> extensions table into a read-only extension -> platform map.

    Raises:
        ValueError: If an extension is claimed by more than one platform
    """
    index = {}
    for platform, extensions in platforms.items():
        for ext in extensions:
            ext = ext.lower()
            if ext in index and index[ext] != platform:
                raise ValueError(
                    f"Extension {ext} mapped to both {index[ext]} and {platform}"
                )
            index[ext] = platform
    return MappingProxyType(index)


def _iter_files(root: str) -> Iterator[str]:
    """
    Yield file paths under root, depth-first in lexical order.

    Directory symlinks are not followed; unreadable directories are skipped.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        logger.debug(f"Cannot access {root}: {e}")
        return

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                yield from _iter_files(entry.path)
            elif entry.is_file():
                yield entry.path
        except OSError as e:
            logger.debug(f"Skipping {entry.path}: {e}")


def _copy(game: GameRecord) -> GameRecord:
    return msgspec.structs.replace(game)


# =============================================================================
# Library Store
# =============================================================================

class LibraryStore:
    """
    Thread-safe, persistent catalog of ROM files.

    Usage:
        store = LibraryStore(get_library_path())
        store.load()
        store.add_scan_path("/home/me/roms")
        found = store.scan()
        nes_games = store.get_games(platform="NES")
    """

    def __init__(
        self,
        config_path,
        platforms: Mapping[str, Sequence[str]] = PLATFORM_EXTENSIONS,
    ):
        """
        Args:
            config_path: Snapshot file used by load()/save() when no path is given
            platforms: Platform -> extensions table; read once, never mutated
        """
        self.config_path = Path(config_path)
        self._extension_index = build_extension_index(platforms)
        self._lock = ReadWriteLock()

        self._games: List[GameRecord] = []
        self._scan_paths: List[str] = []
        self._categories: Dict[str, int] = {}
        self._platforms: Dict[str, int] = {}
        self._last_scan: datetime = ZERO_TIME

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self, path=None) -> bool:
        """
        Replace the store's state with the snapshot at `path`.

        A missing file is not an error; the store keeps its current
        (normally empty) state.

        Args:
            path: Snapshot file; defaults to the store's config path

        Returns:
            True if a snapshot was loaded, False if the file does not exist

        Raises:
            SnapshotDecodeError: If the file exists but cannot be parsed
            PersistenceError: If the file exists but cannot be read
        """
        target = Path(path) if path is not None else self.config_path

        try:
            data = target.read_bytes()
        except FileNotFoundError:
            logger.info(f"No library snapshot at {target}, starting with an empty library")
            return False
        except OSError as e:
            raise PersistenceError(target, e) from e

        try:
            snapshot = decode_json(data, type=LibrarySnapshot)
        except msgspec.DecodeError as e:
            raise SnapshotDecodeError(target, str(e)) from e

        with self._lock.write_locked():
            self._games = list(snapshot.games)
            self._scan_paths = list(snapshot.scan_paths)
            self._categories = dict(snapshot.categories)
            self._platforms = dict(snapshot.platforms)
            self._last_scan = snapshot.last_scan

        logger.info(
            f"Library loaded from {target}: {len(snapshot.games)} games, "
            f"{len(snapshot.scan_paths)} scan paths"
        )
        return True

    def save(self, path=None) -> None:
        """
        Write the full state to `path` (default: the store's config path).

        Parent directories are created as needed and the target is
        overwritten directly.

        Raises:
            PersistenceError: If the file cannot be written
        """
        with self._lock.write_locked():
            self._save_unlocked(path)

    def _save_unlocked(self, path=None) -> None:
        """Serialize state; caller must hold the write lock."""
        target = Path(path) if path is not None else self.config_path
        snapshot = LibrarySnapshot(
            games=self._games,
            scan_paths=self._scan_paths,
            categories=self._categories,
            platforms=self._platforms,
            last_scan=self._last_scan,
        )
        data = format_json(encode_json(snapshot), indent=2)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to save library to {target}: {e}")
            raise PersistenceError(target, e) from e

        logger.debug(f"Library saved to {target} ({len(self._games)} games)")

    # =========================================================================
    # Scanning
    # =========================================================================

    def add_scan_path(self, path) -> bool:
        """
        Register a directory to be scanned.

        Adding a path that is already registered (exact string match) is a
        no-op. The scan root list is persisted with the next save.

        Returns:
            True if the path was added, False if it was already present

        Raises:
            ScanPathNotFoundError: If the path does not exist
            ScanPathNotADirectoryError: If the path is not a directory
        """
        path = os.fspath(path)
        if not os.path.exists(path):
            raise ScanPathNotFoundError(path)
        if not os.path.isdir(path):
            raise ScanPathNotADirectoryError(path)

        with self._lock.write_locked():
            if path in self._scan_paths:
                return False
            self._scan_paths.append(path)

        logger.info(f"Added scan path: {path}")
        return True

    def detect_platform(self, extension: str) -> Optional[str]:
        """Platform for a file extension (case-insensitive), or None if unmapped."""
        return self._extension_index.get(extension.lower())

    def scan(self) -> int:
        """
        Rebuild the library from every configured scan root, then persist it.

        Holds the write lock for the whole walk, so every other store
        operation waits until the scan (and its save) has finished. The
        record sequence and both count maps are swapped in together.

        Returns:
            Number of games found

        Raises:
            PersistenceError: If saving fails; the new in-memory state is kept
        """
        with self._lock.write_locked():
            games: List[GameRecord] = []
            platforms: Dict[str, int] = {}
            categories: Dict[str, int] = {}
            seen_ids: Dict[str, str] = {}

            for root in self._scan_paths:
                if not os.path.isdir(root):
                    logger.warning(f"Scan path no longer available, skipping: {root}")
                    continue

                logger.info(f"Scanning {root}")
                for file_path in _iter_files(root):
                    filename = os.path.basename(file_path)
                    platform = self.detect_platform(split_extension(filename)[1])
                    if platform is None:
                        continue

                    game = GameRecord(
                        id=generate_id(file_path),
                        title=clean_game_title(filename),
                        platform=platform,
                        path=file_path,
                        category=DEFAULT_CATEGORY,
                    )
                    if game.id in seen_ids:
                        logger.warning(
                            f"ID collision: {game.id} used by {seen_ids[game.id]} and {file_path}"
                        )
                    else:
                        seen_ids[game.id] = file_path

                    games.append(game)
                    platforms[platform] = platforms.get(platform, 0) + 1
                    categories[game.category] = categories.get(game.category, 0) + 1

            self._games = games
            self._platforms = platforms
            self._categories = categories
            self._last_scan = datetime.now(timezone.utc)

            logger.info(f"Scan complete: found {len(games)} games across {len(platforms)} platforms")
            self._save_unlocked()
            return len(games)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_games(self, platform: str = "", category: str = "") -> List[GameRecord]:
        """
        Records matching every non-empty filter (exact match), in scan order.

        With both filters empty, returns every record.
        """
        with self._lock.read_locked():
            if not platform and not category:
                return [_copy(game) for game in self._games]
            return [
                _copy(game)
                for game in self._games
                if (not platform or game.platform == platform)
                and (not category or game.category == category)
            ]

    def get_game_by_id(self, game_id: str) -> GameRecord:
        """
        Raises:
            GameNotFoundError: If no record has this ID
        """
        with self._lock.read_locked():
            game = self._find(game_id)
            if game is None:
                raise GameNotFoundError(game_id)
            return _copy(game)

    def get_favorites(self) -> List[GameRecord]:
        with self._lock.read_locked():
            return [_copy(game) for game in self._games if game.favorite]

    def get_recently_played(self, limit: int = 0) -> List[GameRecord]:
        """
        All records ordered by last_played, most recent first.

        Records with equal timestamps keep their scan order.

        Args:
            limit: If 0 < limit < total, only the first `limit` records are returned
        """
        with self._lock.read_locked():
            games = [_copy(game) for game in self._games]

        games.sort(key=lambda game: game.last_played, reverse=True)
        if 0 < limit < len(games):
            return games[:limit]
        return games

    def get_platforms(self) -> Dict[str, int]:
        with self._lock.read_locked():
            return dict(self._platforms)

    def get_categories(self) -> Dict[str, int]:
        with self._lock.read_locked():
            return dict(self._categories)

    def get_scan_paths(self) -> List[str]:
        with self._lock.read_locked():
            return list(self._scan_paths)

    @property
    def last_scan(self) -> datetime:
        with self._lock.read_locked():
            return self._last_scan

    @property
    def game_count(self) -> int:
        with self._lock.read_locked():
            return len(self._games)

    def _find(self, game_id: str) -> Optional[GameRecord]:
        """First record with this ID; caller must hold the lock."""
        for game in self._games:
            if game.id == game_id:
                return game
        return None

    # =========================================================================
    # Mutations
    # =========================================================================

    def toggle_favorite(self, game_id: str) -> bool:
        """
        Flip a record's favorite flag and persist immediately.

        Returns:
            The new favorite value

        Raises:
            GameNotFoundError: If no record has this ID
            PersistenceError: If saving fails; the flip is kept in memory
        """
        with self._lock.write_locked():
            game = self._find(game_id)
            if game is None:
                raise GameNotFoundError(game_id)

            game.favorite = not game.favorite
            logger.debug(f"Favorite for {game_id} set to {game.favorite}")
            self._save_unlocked()
            return game.favorite

    def record_play(self, game_id: str) -> GameRecord:
        """
        Mark a game as played now and persist immediately.

        Returns:
            Copy of the updated record

        Raises:
            GameNotFoundError: If no record has this ID
            PersistenceError: If saving fails; the update is kept in memory
        """
        with self._lock.write_locked():
            game = self._find(game_id)
            if game is None:
                raise GameNotFoundError(game_id)

            game.last_played = datetime.now(timezone.utc)
            game.play_count += 1
            logger.info(f"Recorded play for {game_id} (count={game.play_count})")
            self._save_unlocked()
            return _copy(game)
