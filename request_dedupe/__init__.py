"""
Request deduplication for asyncio.

Coalesces concurrent calls sharing a key into one producer call and keeps
the settled result shared for a short window before evicting it.
"""
from .config_loader import config
from .deduplicator import (
    Deduplicator,
    clear_dedupe,
    create_deduplicator,
    dedupe,
    dedupe_cache_size,
    default_deduplicator,
    has_dedupe,
)
from .exceptions import InvalidArgumentError
from .models import CacheEntry, DedupeOptions

__version__ = "1.0.0"
__all__ = [
    "CacheEntry",
    "DedupeOptions",
    "Deduplicator",
    "InvalidArgumentError",
    "clear_dedupe",
    "config",
    "create_deduplicator",
    "dedupe",
    "dedupe_cache_size",
    "default_deduplicator",
    "has_dedupe",
]
