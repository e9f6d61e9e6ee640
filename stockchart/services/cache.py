"""Two-tier store for upstream price history responses.

Entries are written to both tiers on every set. Reads go to the structured
response tier first and only fall back to the key/value tier on a miss or a
failure there. Expiry is evaluated by the caller via ``is_expired``; stale
entries stay on disk until overwritten so they remain readable.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Protocol

from stockchart.config import Settings
from stockchart.errors import CacheReadError, CacheWriteError
from stockchart.models import CacheEntry

logger = logging.getLogger(__name__)


def cache_key(namespace: str, identifier: str) -> str:
    return f"{namespace}-{identifier}"


class CacheTier(Protocol):
    name: str

    def read(self, key: str) -> str | None:
        """Return the stored JSON string for key, or None if absent."""
        ...

    def write(self, key: str, payload: str) -> None:
        """Store payload under key, replacing any previous value."""
        ...


class MemoryTier:
    """Process-local tier. Lost on restart."""

    name = "memory"

    def __init__(self):
        self._store: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self._store.get(key)

    def write(self, key: str, payload: str) -> None:
        self._store[key] = payload


class ResponseCacheTier:
    """Structured tier: one JSON response document per key.

    Documents live under ``<root>/<namespace>/`` and record the request key,
    the content type and the serialized body, so a read hands back exactly
    what was put.
    """

    name = "responses"

    def __init__(self, root: Path, namespace: str):
        self.directory = Path(root) / namespace
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def read(self, key: str) -> str | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            if document.get("url") != key:
                return None
            return document["body"]
        except (OSError, ValueError, KeyError, AttributeError) as e:
            raise CacheReadError(f"Response cache read failed for {key}: {e}") from e

    def write(self, key: str, payload: str) -> None:
        path = self._path_for(key)
        document = {
            "url": key,
            "headers": {"Content-Type": "application/json"},
            "body": payload,
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self._lock:
                _atomic_write(path, json.dumps(document))
        except OSError as e:
            raise CacheWriteError(f"Response cache write failed for {key}: {e}") from e


class KeyValueTier:
    """Persistent string key/value tier backed by a single JSON object file."""

    name = "key-value"

    def __init__(self, path: Path):
        self.path = Path(path)
        # Writes are load-modify-replace on one file; serialize them.
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def read(self, key: str) -> str | None:
        try:
            with self._lock:
                return self._load().get(key)
        except (OSError, ValueError) as e:
            raise CacheReadError(f"Key/value read failed for {key}: {e}") from e

    def write(self, key: str, payload: str) -> None:
        try:
            with self._lock:
                try:
                    data = self._load()
                except ValueError:
                    logger.warning("Discarding unreadable key/value store at %s", self.path)
                    data = {}
                data[key] = payload
                self.path.parent.mkdir(parents=True, exist_ok=True)
                _atomic_write(self.path, json.dumps(data))
        except OSError as e:
            raise CacheWriteError(f"Key/value write failed for {key}: {e}") from e


def _atomic_write(path: Path, text: str) -> None:
    """Write to a unique sibling temp file, then swap it into place."""
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    ) as tmp:
        tmp.write(text)
    try:
        os.replace(tmp.name, path)
    except OSError:
        os.unlink(tmp.name)
        raise


class CacheStore:
    def __init__(self, primary: CacheTier, fallback: CacheTier, duration_seconds: int = 300):
        self.primary = primary
        self.fallback = fallback
        self.duration_ms = duration_seconds * 1000

    def get(self, key: str) -> CacheEntry | None:
        """Look up key in the primary tier, then the fallback. Never raises."""
        for tier in (self.primary, self.fallback):
            try:
                payload = tier.read(key)
                if payload is None:
                    continue
                return CacheEntry.from_json(payload)
            except Exception as e:
                logger.warning("Error reading cache (%s tier, key=%s): %s", tier.name, key, e)
        return None

    def set(self, key: str, entry: CacheEntry) -> None:
        """Write entry through to both tiers. Failures are logged, not raised."""
        payload = entry.to_json()
        for tier in (self.primary, self.fallback):
            try:
                tier.write(key, payload)
            except Exception as e:
                logger.error("Error writing cache (%s tier, key=%s): %s", tier.name, key, e)

    def is_expired(self, timestamp: int, now: int | None = None) -> bool:
        if now is None:
            now = int(time.time() * 1000)
        return now - timestamp > self.duration_ms


def build_cache_store(config: Settings) -> CacheStore:
    """Wire the file-backed tiers, or in-memory tiers when CACHE_DIR is empty."""
    if not config.cache_dir:
        return CacheStore(MemoryTier(), MemoryTier(), config.cache_duration_seconds)

    root = Path(config.cache_dir)
    return CacheStore(
        ResponseCacheTier(root, config.cache_namespace),
        KeyValueTier(root / "local-storage.json"),
        config.cache_duration_seconds,
    )
