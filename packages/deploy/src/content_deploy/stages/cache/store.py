from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Protocol

import structlog
from content_deploy.core import (
    CacheCorruptionError,
    CacheError,
    InvalidArgumentError,
    atomic_dir_commit,
    atomic_write_bytes,
    atomic_write_json,
    make_tmp_dir_for,
    read_json,
    remove_tree,
    sha256_bytes,
    sha256_file,
    utc_now_iso,
    utc_stamp,
)
from pydantic import ValidationError

from .models import CacheEntry

log = structlog.get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]*$")

PAYLOAD_NAME = "payload.bin"
ENTRY_NAME = "entry.json"


class CacheStore(Protocol):
    def lookup(self, key: str) -> CacheEntry | None: ...
    def store(self, key: str, payload: bytes) -> CacheEntry: ...
    def restore_prefix(self, prefix: str) -> CacheEntry | None: ...


def _check_key(key: str) -> str:
    if not _KEY_PATTERN.match(key):
        raise InvalidArgumentError(f"Invalid cache key: {key!r}")
    return key


class FsCacheStore:
    """
    Content-addressed cache on the local filesystem:

      {root}/{key}/entry.json
      {root}/{key}/payload.bin

    Each entry directory is written to a temp dir and renamed into place, so
    readers never observe a half-written entry.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._lock = threading.Lock()

    def _entry_dir(self, key: str) -> Path:
        return self.root / _check_key(key)

    def _load(self, entry_dir: Path) -> CacheEntry:
        rec = read_json(entry_dir / ENTRY_NAME)
        return CacheEntry(payload_path=entry_dir / PAYLOAD_NAME, **rec)

    def invalidate(self, key: str) -> None:
        entry_dir = self._entry_dir(key)
        if not entry_dir.exists():
            return
        trash = entry_dir.with_name(f".{entry_dir.name}.invalid.{utc_stamp()}")
        try:
            entry_dir.rename(trash)
        except FileNotFoundError:
            return
        except OSError as e:
            raise CacheError(f"Failed to invalidate cache entry {key}: {e}") from e
        remove_tree(trash)
        log.warning("cache.invalidated", key=key)

    def lookup(self, key: str) -> CacheEntry | None:
        """
        Return the entry for `key` after re-hashing its payload. A payload that
        no longer matches its recorded digest is invalidated and reported as a
        miss.
        """
        entry_dir = self._entry_dir(key)
        if not entry_dir.is_dir():
            return None

        try:
            entry = self._load(entry_dir)
            actual = sha256_file(entry.payload_path).sha256
        except (ValueError, ValidationError, FileNotFoundError) as e:
            log.warning("cache.entry_unreadable", key=key, error=str(e))
            self.invalidate(key)
            return None
        except OSError as e:
            raise CacheError(f"Cache lookup failed for {key}: {e}") from e

        if actual != entry.sha256:
            log.warning(
                "cache.corrupt", key=key, expected=entry.sha256, actual=actual
            )
            self.invalidate(key)
            return None
        return entry

    def store(self, key: str, payload: bytes) -> CacheEntry:
        """
        Idempotent for identical (key, payload). A different payload under an
        existing key invalidates that entry and raises CacheCorruptionError.
        """
        entry_dir = self._entry_dir(key)
        digest = sha256_bytes(payload)

        with self._lock:
            existing = self.lookup(key)
            if existing is not None:
                if existing.sha256 == digest:
                    return existing
                self.invalidate(key)
                raise CacheCorruptionError(key, expected=existing.sha256, actual=digest)

            tmp_dir: Path | None = None
            try:
                tmp_dir = make_tmp_dir_for(entry_dir)
                atomic_write_bytes(tmp_dir / PAYLOAD_NAME, payload)
                record = {
                    "key": key,
                    "sha256": digest,
                    "bytes": len(payload),
                    "created_at_utc": utc_now_iso(),
                }
                atomic_write_json(tmp_dir / ENTRY_NAME, record)
                atomic_dir_commit(tmp_dir=tmp_dir, final_dir=entry_dir)
                tmp_dir = None
            except FileExistsError:
                # another process committed first; re-validate through lookup
                return self._store_race(key, digest)
            except OSError as e:
                raise CacheError(f"Cache store failed for {key}: {e}") from e
            finally:
                if tmp_dir is not None:
                    remove_tree(tmp_dir)

        log.info("cache.stored", key=key, bytes=len(payload), sha256=digest)
        return self._load(entry_dir)

    def _store_race(self, key: str, digest: str) -> CacheEntry:
        existing = self.lookup(key)
        if existing is None:
            raise CacheError(f"Cache entry {key} vanished during concurrent store")
        if existing.sha256 != digest:
            self.invalidate(key)
            raise CacheCorruptionError(key, expected=existing.sha256, actual=digest)
        return existing

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name
            for p in self.root.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    def restore_prefix(self, prefix: str) -> CacheEntry | None:
        """
        Most recently created valid entry whose key starts with `prefix`
        (the `restore-keys` fallback).
        """
        candidates: list[CacheEntry] = []
        for key in self.keys():
            if not key.startswith(prefix):
                continue
            try:
                candidates.append(self._load(self.root / key))
            except (ValueError, ValidationError, OSError):
                continue

        for entry in sorted(candidates, key=lambda e: e.created_at_utc, reverse=True):
            verified = self.lookup(entry.key)
            if verified is not None:
                return verified
        return None
