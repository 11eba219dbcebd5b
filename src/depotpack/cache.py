"""Two-tier cache of the bulk depot key table.

The memory tier lives on the ``KeyTableCache`` object, the file tier is one
JSON file whose age is its modification time. At most one network fetch of
the table is in flight; callers arriving meanwhile wait for its outcome.
"""

import json
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from pathlib import Path

from depotpack.types import CacheEntry, CacheStatus, KeyTable

__all__ = ["KeyTableCache"]

logger = logging.getLogger(__name__)

HOUR = 60 * 60


class KeyTableCache:
    def __init__(
        self,
        path: Path,
        ttl_hours: float,
        fetch: Callable[[], KeyTable],
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self.ttl = ttl_hours * HOUR
        self._fetch = fetch
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._lock = threading.Lock()
        self._inflight: Future[KeyTable] | None = None
        # bumped by clear(); a fetch started before a clear is not stored
        self._generation = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        with self._lock:
            self._entry = None

    def _fresh(self, fetched_at: float) -> bool:
        return self.ttl > 0 and self._clock() - fetched_at < self.ttl

    def _load_file(self) -> CacheEntry | None:
        try:
            fetched_at = self.path.stat().st_mtime
            if not self._fresh(fetched_at):
                logger.debug("Key table file %s expired", self.path)
                return None
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as ex:
            logger.debug("Unreadable key table file %s: %s", self.path, ex)
            return None
        if not isinstance(payload, dict) or not payload:
            return None
        return CacheEntry(payload, fetched_at)

    def _save_file(self, table: KeyTable):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(table), encoding="utf-8")
        except OSError as ex:
            logger.warning("Failed to persist key table to %s: %s", self.path, ex)
            return
        logger.debug("Persisted %d keys to %s", len(table), self.path)

    def get(self, force_refresh: bool = False) -> tuple[KeyTable, bool]:
        """Return ``(table, from_cache)``; fetch errors propagate to every waiting caller."""
        with self._lock:
            if not force_refresh:
                if self._entry is not None and self._fresh(self._entry.fetched_at):
                    logger.debug("Key table from memory (%d keys)", len(self._entry.payload))
                    return self._entry.payload, True
                if self.ttl > 0 and (entry := self._load_file()) is not None:
                    logger.debug("Key table from %s (%d keys)", self.path, len(entry.payload))
                    self._entry = entry
                    return entry.payload, True
            if self._inflight is not None:
                future = self._inflight
                leader = False
            else:
                future = self._inflight = Future()
                leader = True
            generation = self._generation

        if not leader:
            logger.debug("Waiting for in-flight key table fetch")
            return future.result(), False

        try:
            table = self._fetch()
        except BaseException as ex:
            future.set_exception(ex)
            raise
        else:
            future.set_result(table)
            if self.ttl > 0:
                with self._lock:
                    if generation == self._generation:
                        self._entry = CacheEntry(table, self._clock())
                        self._save_file(table)
                    else:
                        logger.debug("Cache cleared during fetch, not storing the table")
            return table, False
        finally:
            with self._lock:
                self._inflight = None

    def refresh(self) -> int:
        table, _ = self.get(force_refresh=True)
        return len(table)

    def clear(self):
        with self._lock:
            self._entry = None
            self._generation += 1
        try:
            self.path.unlink(missing_ok=True)
        except OSError as ex:
            logger.warning("Failed to remove %s: %s", self.path, ex)
        logger.info("Key table cache cleared")

    def status(self) -> CacheStatus:
        now = self._clock()
        with self._lock:
            entry = self._entry
        file_count = 0
        file_age = None
        try:
            file_age = now - self.path.stat().st_mtime
            file_count = len(json.loads(self.path.read_text(encoding="utf-8")))
        except FileNotFoundError:
            file_age = None
        except (OSError, ValueError, TypeError) as ex:
            logger.debug("Unreadable key table file %s: %s", self.path, ex)
        return CacheStatus(
            has_memory=entry is not None,
            memory_count=len(entry.payload) if entry else 0,
            memory_age=now - entry.fetched_at if entry else None,
            has_file=file_age is not None,
            file_count=file_count,
            file_age=file_age,
        )
