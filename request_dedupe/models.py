"""
Pydantic models for deduplicator configuration and registry entries.

This module contains the data models shared by the deduplicator and the
configuration loader: the options accepted at construction time and the
per-key registry entry.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DURATION_MS = 100.0
DEFAULT_CLEAR_ON_ERROR = True


class DedupeOptions(BaseModel):
    """
    Options for a Deduplicator instance.

    Attributes:
        duration: Milliseconds an entry stays shared after its producer settles (default: 100)
        key_generator: Optional transform applied to every key before registry access
        clear_on_error: Evict failed entries immediately instead of after duration (default: True)
    """

    model_config = ConfigDict(frozen=True)

    duration: float = Field(default=DEFAULT_DURATION_MS, ge=0)
    key_generator: Callable[[str], str] | None = None
    clear_on_error: bool = DEFAULT_CLEAR_ON_ERROR

    @property
    def duration_seconds(self) -> float:
        return self.duration / 1000.0


class CacheEntry(BaseModel):
    """
    One in-flight or recently settled producer call.

    Attributes:
        task: Shared asyncio task wrapping the producer's awaitable
        created_at: Wall-clock time of the first request in this cycle
        ref_count: Number of requests that joined this entry (diagnostic)
        settled_at: Wall-clock time the producer settled, None while pending
        expires_at: Monotonic deadline after which the entry counts as absent
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    task: asyncio.Future
    created_at: float = Field(default_factory=time.time)
    ref_count: int = Field(default=1, ge=1)
    settled_at: float | None = None
    expires_at: float | None = None

    @property
    def state(self) -> Literal["pending", "settled"]:
        return "settled" if self.task.done() else "pending"

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def describe(self) -> dict[str, Any]:
        """Diagnostic snapshot without the task handle."""
        return self.model_dump(exclude={"task"}) | {"state": self.state}


__all__ = [
    "DEFAULT_CLEAR_ON_ERROR",
    "DEFAULT_DURATION_MS",
    "CacheEntry",
    "DedupeOptions",
]
