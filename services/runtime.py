"""
services/runtime.py
Dedicated asyncio loop for evaluation work.

Flask serves requests on its own threads; all cache/in-flight state and
every background evaluation live on this one loop thread. Request handlers
hand coroutines over with run() and wait with a timeout. A timed-out request
is cancelled, but evaluation tasks it dispatched are separate loop tasks and
keep running.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional

from errors import RequestTimeoutError

logger = logging.getLogger(__name__)


class BackgroundRuntime:

    def __init__(self, name: str = "evaluation-loop"):
        self.name = name
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._start_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "BackgroundRuntime":
        with self._start_lock:
            if self.running:
                return self
            self._ready.clear()
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()
            self._ready.wait(timeout=5)
            logger.info("Evaluation loop started (%s)", self.name)
        return self

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        self.loop.run_forever()

    def submit(self, coro: Coroutine) -> concurrent.futures.Future:
        if not self.running:
            self.start()
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, timeout: Optional[float] = None) -> Any:
        """Run coro on the loop and block the calling thread for its result."""
        future = self.submit(coro)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise RequestTimeoutError(f"request exceeded {timeout}s") from e

    def stop(self, timeout: float = 5.0) -> None:
        if not self.running:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout)
        logger.info("Evaluation loop stopped (%s)", self.name)
