"""
Versioned TTL caches.

Each cache owns a version counter. An entry is fresh only while it is within
its TTL and was written under the current version, so bumping the version
invalidates every entry at once without enumerating keys. Entries are always
replaced whole, never mutated.
"""

import errno
import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generic, Hashable, List, Optional, TypeVar

from .models import Token

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EVICT_COUNT = 10


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A versioned snapshot of cached data."""

    data: T
    stored_at: float
    version: int

    def is_fresh(self, now: float, ttl: float, current_version: int) -> bool:
        return now - self.stored_at < ttl and self.version == current_version


class VersionedCache(Generic[T]):
    """Process-lifetime in-memory cache keyed by any hashable key."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self._version = 1
        self._version_lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def get(self, key: Hashable) -> Optional[T]:
        """Return cached data if fresh, else None."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock(), self.ttl, self._version):
            return None
        return entry.data

    def peek(self, key: Hashable) -> Optional[CacheEntry[T]]:
        """Return the last entry for a key regardless of age or version."""
        return self._entries.get(key)

    def put(self, key: Hashable, data: T) -> CacheEntry[T]:
        entry = CacheEntry(data=data, stored_at=self._clock(), version=self._version)
        self._entries[key] = entry
        return entry

    def bump_version(self) -> int:
        """Invalidate every entry."""
        with self._version_lock:
            self._version += 1
            return self._version


def _is_storage_exhausted(error: OSError) -> bool:
    return error.errno in (errno.ENOSPC, errno.EDQUOT)


class BalanceCache:
    """
    Persistent per-wallet, per-chain snapshot of normalized token lists.

    Each entry is one JSON file under `directory`; the version counter lives
    in a metadata file so invalidation survives restarts. Caching is an
    optimization only: write failures are logged and dropped.
    """

    FILE_PREFIX = "balances_"
    VERSION_FILE = "version.json"

    def __init__(
        self,
        directory: Path,
        ttl: float,
        clock: Callable[[], float] = time.time,
        evict_count: int = DEFAULT_EVICT_COUNT,
    ):
        self.directory = Path(directory)
        self.ttl = ttl
        self.evict_count = evict_count
        self._clock = clock
        self._version_lock = threading.Lock()
        self._version = self._load_version()

    @staticmethod
    def make_key(wallet: str, chain_id: int) -> str:
        return f"{wallet.strip().lower()}:{chain_id}"

    def _path_for(self, wallet: str, chain_id: int) -> Path:
        digest = hashlib.sha256(self.make_key(wallet, chain_id).encode("utf-8")).hexdigest()[:32]
        return self.directory / f"{self.FILE_PREFIX}{digest}.json"

    def _load_version(self) -> int:
        try:
            with open(self.directory / self.VERSION_FILE, encoding="utf-8") as f:
                return int(json.load(f)["version"])
        except (OSError, ValueError, KeyError, TypeError):
            return 1

    @property
    def version(self) -> int:
        return self._version

    def _read_entry(self, wallet: str, chain_id: int) -> Optional[CacheEntry[List[Token]]]:
        path = self._path_for(wallet, chain_id)
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
            if raw.get("key") != self.make_key(wallet, chain_id):
                return None
            return CacheEntry(
                data=[Token.from_dict(item) for item in raw["data"]],
                stored_at=float(raw["stored_at"]),
                version=int(raw["version"]),
            )
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable balance cache entry %s: %s", path.name, e)
            return None

    def get(self, wallet: str, chain_id: int) -> Optional[List[Token]]:
        """Return the cached token list if fresh, else None (a miss)."""
        entry = self._read_entry(wallet, chain_id)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock(), self.ttl, self._version):
            return None
        logger.debug("Balance cache hit for %s on chain %s", wallet, chain_id)
        return entry.data

    def peek(self, wallet: str, chain_id: int) -> Optional[CacheEntry[List[Token]]]:
        """Return the last stored entry regardless of age or version."""
        return self._read_entry(wallet, chain_id)

    def _write_atomic(self, path: Path, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def _evict_oldest(self) -> int:
        """Delete the oldest cache files; returns how many were removed."""
        try:
            files = sorted(
                self.directory.glob(f"{self.FILE_PREFIX}*.json"),
                key=lambda p: p.stat().st_mtime,
            )
        except OSError:
            return 0

        removed = 0
        for path in files[: self.evict_count]:
            try:
                path.unlink()
                removed += 1
            except OSError:
                continue
        return removed

    def put(self, wallet: str, chain_id: int, tokens: List[Token]) -> None:
        """Store a token list, replacing any previous entry for the key."""
        path = self._path_for(wallet, chain_id)
        payload = json.dumps(
            {
                "key": self.make_key(wallet, chain_id),
                "stored_at": self._clock(),
                "version": self._version,
                "data": [token.to_dict() for token in tokens],
            }
        )

        try:
            self._write_atomic(path, payload)
            return
        except OSError as e:
            if not _is_storage_exhausted(e):
                logger.warning("Failed to write balance cache: %s", e)
                return
            logger.warning("Balance cache storage exhausted, evicting oldest entries")

        self._evict_oldest()
        try:
            self._write_atomic(path, payload)
        except OSError as e:
            logger.warning("Failed to store balance cache after cleanup: %s", e)

    def invalidate_all(self) -> int:
        """Bump the version so every existing entry becomes a miss."""
        with self._version_lock:
            self._version += 1
            try:
                self._write_atomic(
                    self.directory / self.VERSION_FILE,
                    json.dumps({"version": self._version}),
                )
            except OSError as e:
                logger.warning("Failed to persist balance cache version: %s", e)
            return self._version
