"""
In-process request deduplication for asyncio producers.

Concurrent calls that share a key observe a single in-flight producer call.
Once the producer settles, its result stays shared for a short window and is
then evicted so the next call runs the producer again.

The module also builds a process-wide default instance. Every caller in the
process that uses the module-level bindings shares its key namespace;
construct a Deduplicator when isolation is needed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, TypeVar

from .exceptions import InvalidArgumentError
from .models import CacheEntry, DedupeOptions

T = TypeVar("T")


class Deduplicator:
    """
    Registry of in-flight and recently settled producer calls, keyed by string.

    Each key moves through absent -> pending -> settled -> absent. clear() may
    force a pending or settled key straight back to absent. A cleared producer
    keeps running; it is only unbound from the registry, so a later dedupe()
    for the same key starts a second producer.

    The check-then-insert path has no suspension point, and registry
    mutations also run under a lock so instances can be shared across threads.
    An entry's task belongs to the event loop that created it.
    """

    def __init__(
        self,
        options: DedupeOptions | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or DedupeOptions()
        self.logger = logger or logging.getLogger(self.__class__.__module__)
        self._entries: dict[str, CacheEntry] = {}
        # Reentrant so a producer that calls back into this instance cannot deadlock.
        self._lock = threading.RLock()

    def dedupe(self, key: str, producer: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """
        Share an in-flight producer call for key, or start one.

        Args:
            key: Non-empty string identifying the operation.
            producer: Zero-argument callable returning an awaitable. Only
                invoked when no entry exists for key.

        Returns:
            An awaitable resolving to the shared result. Every caller gets
            its own shielded view, so cancelling one caller's wait leaves
            the producer running for the others.

        Raises:
            InvalidArgumentError: key is missing, empty or not a string.
            RuntimeError: called without a running event loop.
        """
        key = self._normalize(key)
        loop = asyncio.get_running_loop()

        with self._lock:
            entry = self._live_entry(key)
            if entry is not None:
                entry.ref_count += 1
                self.logger.debug(
                    "Joined %s entry for %r (refs=%s)", entry.state, key, entry.ref_count
                )
                return asyncio.shield(entry.task)

            task = asyncio.ensure_future(producer(), loop=loop)
            entry = CacheEntry(task=task)
            self._entries[key] = entry
            task.add_done_callback(partial(self._on_settled, key, entry))

        self.logger.debug("Started producer for %r", key)
        return asyncio.shield(task)

    def clear(self, key: str | None = None) -> None:
        """Remove the entry for key, or every entry when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
                return
            lookup = self._lookup_key(key)
            if lookup is not None:
                self._entries.pop(lookup, None)

    def has(self, key: str) -> bool:
        """
        Check whether key currently has an entry.

        Keys that fail validation report False. Exceptions raised by a
        configured key_generator are not caught and reach the caller.
        """
        return self.get_entry(key) is not None

    def size(self) -> int:
        with self._lock:
            now = time.monotonic()
            for key in [k for k, entry in self._entries.items() if entry.is_expired(now)]:
                self._drop_expired(key)
            return len(self._entries)

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the current entry for key for inspection, or None."""
        lookup = self._lookup_key(key)
        if lookup is None:
            return None
        with self._lock:
            return self._live_entry(lookup)

    def __len__(self) -> int:
        return self.size()

    def _normalize(self, key: Any) -> str:
        if not isinstance(key, str) or not key:
            raise InvalidArgumentError()
        generator = self.options.key_generator
        if generator is None:
            return key
        normalized = generator(key)
        if not isinstance(normalized, str) or not normalized:
            raise InvalidArgumentError("Key generator must return a non-empty string")
        return normalized

    def _lookup_key(self, key: Any) -> str | None:
        """Normalize key for read and clear paths, which return nothing for invalid keys."""
        try:
            return self._normalize(key)
        except InvalidArgumentError:
            return None

    def _live_entry(self, key: str) -> CacheEntry | None:
        # Caller holds the lock. Expired entries are dropped here in case their
        # removal timer never fires, e.g. because its event loop was closed.
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired(time.monotonic()):
            self._drop_expired(key)
            return None
        return entry

    def _drop_expired(self, key: str) -> None:
        entry = self._entries.pop(key)
        self.logger.debug("Dropped expired %r after %s joins", key, entry.ref_count)

    def _on_settled(self, key: str, entry: CacheEntry, task: asyncio.Future[Any]) -> None:
        entry.settled_at = time.time()
        # Reading the exception here marks it retrieved on the shared task.
        failed = task.cancelled() or task.exception() is not None

        if failed:
            reason = "cancelled" if task.cancelled() else repr(task.exception())
            self.logger.warning("Producer for %r failed: %s", key, reason)
            if self.options.clear_on_error:
                self._evict(key, entry)
                return

        entry.expires_at = time.monotonic() + self.options.duration_seconds
        task.get_loop().call_later(self.options.duration_seconds, self._evict, key, entry)

    def _evict(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            # A newer entry may have replaced this one after clear(); leave it alone.
            if self._entries.get(key) is entry:
                del self._entries[key]
                self.logger.debug("Evicted %r after %s joins", key, entry.ref_count)


def create_deduplicator(
    options: DedupeOptions | None = None,
    logger: logging.Logger | None = None,
    **overrides: Any,
) -> Deduplicator:
    """
    Build a Deduplicator.

    Without options the built-in defaults are used (100 ms, clear on error).
    Pass config.dedupe_options() to pick up dedupe.yaml and DEDUPE_* settings.
    Keyword overrides such as duration=50 are validated through DedupeOptions.
    """
    base = options or DedupeOptions()
    if overrides:
        base = DedupeOptions(**(base.model_dump() | overrides))
    return Deduplicator(base, logger=logger)


# Process-wide default instance with fixed defaults; shared by every caller of
# the bindings below and independent of dedupe.yaml or the environment.
default_deduplicator = Deduplicator(DedupeOptions())

dedupe = default_deduplicator.dedupe
clear_dedupe = default_deduplicator.clear
has_dedupe = default_deduplicator.has
dedupe_cache_size = default_deduplicator.size


__all__ = [
    "Deduplicator",
    "clear_dedupe",
    "create_deduplicator",
    "dedupe",
    "dedupe_cache_size",
    "default_deduplicator",
    "has_dedupe",
]
