"""
services/evaluation_cache.py
In-memory evaluation cache + single-flight coordinator.

One EvaluationCache is built at startup and handed to the orchestrator.
All methods must be called from the evaluation event loop thread; the
state is not locked.
"""

import asyncio
import functools
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, Optional, Union

from schemas import EvaluationResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 500
DEFAULT_TTL_SECONDS = 60 * 60 * 24


class _Processing:
    """Sentinel returned while a key is being evaluated."""

    def __repr__(self):
        return "PROCESSING"

    def __bool__(self):
        return False


PROCESSING = _Processing()

ComputeFn = Callable[[], Awaitable[Optional[EvaluationResult]]]


class MemoryCache:
    """
    Bounded LRU with a TTL. Reads refresh both recency and age;
    membership checks do not.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_seconds

    def get(self, key: str) -> Optional[EvaluationResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._expired(stored_at):
            del self._entries[key]
            return None
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: EvaluationResult) -> None:
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s from memory cache", evicted)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry[0])

    def __len__(self) -> int:
        return len(self._entries)


class EvaluationCache:
    """Memory cache + in-flight set. At most one computation per key."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.memory = MemoryCache(max_size=max_size, ttl_seconds=ttl_seconds, clock=clock)
        self._in_flight: Dict[str, asyncio.Task] = {}

    # ── Plain cache access ────────────────────────────────────

    def get(self, key: str) -> Optional[EvaluationResult]:
        return self.memory.get(key)

    def set(self, key: str, result: EvaluationResult) -> None:
        self.memory.set(key, result)

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    @property
    def size(self) -> int:
        return len(self.memory)

    @property
    def max_size(self) -> int:
        return self.memory.max_size

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    # ── Single-flight ─────────────────────────────────────────

    def resolve(self, key: str, compute_fn: ComputeFn) -> Union[EvaluationResult, _Processing]:
        """
        Cached result if present (TTL refreshed), otherwise PROCESSING.
        The first caller to miss dispatches compute_fn; later callers for
        the same key only observe PROCESSING until it settles.
        """
        cached = self.memory.get(key)
        if cached is not None:
            return cached

        if key in self._in_flight:
            logger.debug("Evaluation already running for %s", key)
            return PROCESSING

        self.dispatch(key, compute_fn)
        return PROCESSING

    def dispatch(self, key: str, compute_fn: ComputeFn) -> asyncio.Task:
        """Start compute_fn as a background task unless one is already running."""
        existing = self._in_flight.get(key)
        if existing is not None:
            return existing

        task = asyncio.get_running_loop().create_task(compute_fn(), name=f"evaluate:{key}")
        self._in_flight[key] = task
        task.add_done_callback(functools.partial(self._settle, key))
        logger.info("Dispatched background evaluation for %s (in_flight=%d)", key, len(self._in_flight))
        return task

    def _settle(self, key: str, task: asyncio.Task) -> None:
        try:
            if task.cancelled():
                logger.warning("Background evaluation for %s was cancelled", key)
            elif task.exception() is not None:
                logger.error(
                    "Background evaluation for %s crashed: %s",
                    key,
                    task.exception(),
                    exc_info=task.exception(),
                )
            else:
                result = task.result()
                if result is not None:
                    self.memory.set(key, result)
        finally:
            self._in_flight.pop(key, None)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for every running evaluation to settle. False on timeout."""
        tasks = list(self._in_flight.values())
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        # Give done-callbacks a turn to run
        await asyncio.sleep(0)
        return not pending
