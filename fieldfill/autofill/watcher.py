"""Debounced re-scan scheduling driven by DOM mutation notifications."""
from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)

PassCallback = Callable[[], Awaitable[Any]]


class ObservablePage(Protocol):
    async def observe_mutations(self, callback: Callable[[int, int], Any]) -> None:
        ...

    async def stop_observing(self) -> None:
        ...


class MutationWatcher:
    """Turns bursts of mutation batches into at most one scheduled pass.

    Every external batch resets the single pending timer; the pass runs once
    the page has been quiet for ``debounce_ms``. Batches made only of
    self-originated records, and batches arriving while the engine is writing
    (see :meth:`suppress`), are ignored. Passes are serialized, and a pass that
    is already running always completes.
    """

    def __init__(
        self,
        callback: PassCallback,
        debounce_ms: int = 500,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._callback = callback
        self.debounce_ms = debounce_ms
        self._loop = loop
        self._timer: Optional[asyncio.TimerHandle] = None
        self._lock = asyncio.Lock()
        self._suppressed = 0
        self._tasks: "set[asyncio.Task]" = set()
        self._page: Optional[ObservablePage] = None
        self.passes_run = 0
        self.ignored_batches = 0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @property
    def suppressed(self) -> bool:
        return self._suppressed > 0

    @contextmanager
    def suppress(self) -> Iterator[None]:
        """Ignore notifications while the engine applies its own writes."""

        self._suppressed += 1
        try:
            yield
        finally:
            self._suppressed -= 1

    def notify(self, external: int = 1, self_originated: int = 0) -> bool:
        """Record one mutation batch; return True when it (re)scheduled a pass."""

        if external <= 0 or self.suppressed:
            self.ignored_batches += 1
            logger.debug(f"Ignoring mutation batch (external={external}, self={self_originated})")
            return False
        self.schedule()
        return True

    def schedule(self) -> None:
        """(Re)start the debounce timer; only one timer is ever pending."""

        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.loop.call_later(self.debounce_ms / 1000.0, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = self.loop.create_task(self.run_pass())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_pass(self) -> Any:
        """Run one pass, waiting for any pass already in flight."""

        async with self._lock:
            self.passes_run += 1
            try:
                return await self._callback()
            except Exception:
                logger.exception("Scheduled autofill pass failed")
                return None

    async def start(self, page: ObservablePage) -> None:
        self._page = page
        await page.observe_mutations(self.notify)
        logger.info(f"Watching for DOM mutations (debounce {self.debounce_ms}ms)")

    async def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._page is not None:
            await self._page.stop_observing()
            self._page = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info(f"Stopped watching after {self.passes_run} passes")
