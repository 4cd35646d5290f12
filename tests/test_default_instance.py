import asyncio
import pathlib
import sys
import time

import pytest

# Ensure repo root on sys.path for direct module imports when running tests locally.
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import request_dedupe
from request_dedupe import (
    DedupeOptions,
    clear_dedupe,
    create_deduplicator,
    dedupe,
    dedupe_cache_size,
    default_deduplicator,
    has_dedupe,
)


@pytest.fixture(autouse=True)
def _empty_default_registry():
    # The default instance is shared by every test in the session.
    clear_dedupe()
    yield
    clear_dedupe()


@pytest.mark.asyncio
async def test_default_instance_deduplicates_sequential_calls():
    calls = 0

    async def fetcher():
        nonlocal calls
        calls += 1
        return {"data": "test"}

    await dedupe("test-key", fetcher)
    await dedupe("test-key", fetcher)

    assert calls == 1


@pytest.mark.asyncio
async def test_bindings_share_one_instance():
    gate = asyncio.Event()

    async def fetcher():
        await gate.wait()
        return "value"

    handle = dedupe("shared-key", fetcher)

    assert has_dedupe("shared-key")
    assert default_deduplicator.has("shared-key")
    assert dedupe_cache_size() == default_deduplicator.size() == 1

    clear_dedupe("shared-key")
    assert not default_deduplicator.has("shared-key")

    gate.set()
    assert await handle == "value"


def test_default_instance_uses_default_options():
    options = default_deduplicator.options
    assert options.duration == 100
    assert options.clear_on_error is True
    assert options.key_generator is None
    assert request_dedupe.dedupe == default_deduplicator.dedupe


def test_default_options_ignore_environment(monkeypatch):
    monkeypatch.setenv("DEDUPE_DURATION_MS", "5")
    monkeypatch.setenv("DEDUPE_CLEAR_ON_ERROR", "false")

    assert default_deduplicator.options == DedupeOptions()
    assert create_deduplicator().options.duration == 100
    assert create_deduplicator().options.clear_on_error is True


def test_default_instance_expires_between_event_loops():
    calls = 0

    async def fetcher():
        nonlocal calls
        calls += 1
        return calls

    async def call():
        return await dedupe("loop-key", fetcher)

    assert asyncio.run(call()) == 1
    # Longer than the 100 ms default duration; the first loop is already closed.
    time.sleep(0.2)

    assert not has_dedupe("loop-key")
    assert asyncio.run(call()) == 2
