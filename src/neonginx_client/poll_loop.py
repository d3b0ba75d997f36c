"""Poll loop: one stats request per cycle, rescheduled after each response.

The loop owns the aggregation state. Because the next cycle is only scheduled
once the current response has been handled, at most one request is ever in
flight and the state needs no locking.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Set

from .aggregator import AggregateState, aggregate
from .payloads import AppError, AuthFailure, Ok, StatsResult, TransportError
from .view import Renderer, build_view

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[object]]


class StatsSource(Protocol):
    async def fetch_stats(self) -> StatsResult: ...


# ---------------------------------------------------------------------------
# Scheduling


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...


class _AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callback, tasks: Set[asyncio.Task]) -> None:
        self._loop = loop
        self._callback = callback
        self._tasks = tasks
        self.task: Optional[asyncio.Task] = None
        self._handle = loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        self.task = self._loop.create_task(self._callback())
        # the loop only keeps weak references to tasks
        self._tasks.add(self.task)
        self.task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        # an already running cycle is allowed to finish
        self._handle.cancel()


class AsyncioScheduler:
    """Run coroutine callbacks as tasks on the running event loop."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callback) -> _AsyncioTimer:
        return _AsyncioTimer(asyncio.get_running_loop(), delay, callback, self._tasks)

    async def aclose(self) -> None:
        """Cancel cycles that are still running and wait for them."""

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


# ---------------------------------------------------------------------------
# Loop


class LoopState(str, Enum):
    IDLE = "idle"
    AWAITING = "awaiting"
    STOPPED = "stopped"


class PollLoop:
    """Poll ``source`` every ``interval`` seconds and render each good cycle.

    ``redirect`` is called once when the server answers 401; the loop is then
    finished for good and a new instance is needed after logging in again.
    The interval is counted from the end of a cycle, so the real period is
    the interval plus the response latency.
    """

    def __init__(
        self,
        source: StatsSource,
        renderer: Renderer,
        redirect: Callable[[], None],
        *,
        interval: float = 1.0,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.source = source
        self.renderer = renderer
        self.redirect = redirect
        self.interval = interval
        self.scheduler: Scheduler = scheduler or AsyncioScheduler()
        self.state = LoopState.IDLE
        self.cycles = 0
        self._aggregate = AggregateState()
        self._timer: Optional[TimerHandle] = None
        self._started = False
        self._done: Optional[asyncio.Event] = None

    @property
    def aggregate_state(self) -> AggregateState:
        return self._aggregate

    @property
    def stopped(self) -> bool:
        return self.state is LoopState.STOPPED

    # -- control ------------------------------------------------------------
    def start(self) -> None:
        if self.stopped:
            raise RuntimeError("poll loop already stopped; create a new one")
        if self._started:
            return
        self._started = True
        logger.info("poll loop started (interval %.2fs)", self.interval)
        self._timer = self.scheduler.call_later(0, self.run_cycle)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self.stopped:
            logger.info("poll loop stopped after %d cycles", self.cycles)
        self._finish()

    async def aclose(self) -> None:
        """Stop the loop and cancel a cycle still waiting on the server."""

        self.stop()
        closer = getattr(self.scheduler, "aclose", None)
        if closer is not None:
            await closer()

    async def run(self) -> None:
        """Start the loop and wait until it stops."""

        if self._done is None:
            self._done = asyncio.Event()
        if self.stopped:
            return
        self.start()
        await self._done.wait()

    def _finish(self) -> None:
        self.state = LoopState.STOPPED
        if self._done is not None:
            self._done.set()

    # -- cycle --------------------------------------------------------------
    async def run_cycle(self) -> StatsResult:
        """Fetch, aggregate, render and reschedule once."""

        self._timer = None
        if not self.stopped:
            self.state = LoopState.AWAITING
        try:
            result = await self.source.fetch_stats()
        except Exception as exc:
            logger.exception("stats source raised on cycle %d", self.cycles + 1)
            result = TransportError(f"{type(exc).__name__}: {exc}")
        self.cycles += 1
        stopped_meanwhile = self.stopped
        if not stopped_meanwhile:
            self.state = LoopState.IDLE

        if isinstance(result, AuthFailure):
            logger.warning("session rejected by server; leaving dashboard")
            self._finish()
            if not stopped_meanwhile:
                self.redirect()
            return result

        if isinstance(result, Ok):
            self._handle_stats(result)
        elif isinstance(result, AppError):
            logger.warning("stats request reported failure: %s", result.message or "no message")
        elif isinstance(result, TransportError):
            logger.warning("stats request failed: %s", result.reason)

        if not self.stopped:
            self._timer = self.scheduler.call_later(self.interval, self.run_cycle)
        return result

    def _handle_stats(self, result: Ok) -> None:
        payload = result.payload
        totals, self._aggregate = aggregate(payload.servers, self._aggregate)
        logger.debug(
            "cycle %d: %d servers, in=%d out=%d rate_in=%d rate_out=%d",
            self.cycles,
            totals.server_count,
            totals.total_inbound,
            totals.total_outbound,
            self._aggregate.rate_inbound,
            self._aggregate.rate_outbound,
        )
        try:
            self.renderer.render(build_view(payload, totals, self._aggregate))
        except Exception:
            logger.exception("renderer failed on cycle %d", self.cycles)
