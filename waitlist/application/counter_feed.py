from __future__ import annotations
import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import replace
from typing import Awaitable, Callable, Coroutine

from waitlist.application.count_cache import CountCache
from waitlist.application.retry import DEFAULT_MAX_ATTEMPTS, with_retry
from waitlist.config import DEFAULT_REFRESH_INTERVAL
from waitlist.domain.entities import CounterDisplayState, CounterPhase
from waitlist.domain.interfaces import ChangeFeedError, IChangeFeed

log = logging.getLogger(__name__)

ANIMATION_DURATION = 1.0
FRAME_INTERVAL     = 1 / 60


def ease_out_quart(progress: float) -> float:
    return 1 - (1 - progress) ** 4


def interpolate(start: int, target: int, progress: float) -> int:
    """Displayed value at `progress` in [0, 1]; exactly `target` at 1."""
    progress = min(max(progress, 0.0), 1.0)
    return round(start + (target - start) * ease_out_quart(progress))


class FeedHandle:
    """
    What activate() hands back to the rendering layer.

    Use it as an async context manager so teardown happens even when the
    caller fails:

        async with await feed.activate() as handle:
            ...
            handle.force_refresh()
    """

    def __init__(self, feed: LiveCounterFeed) -> None:
        self._feed = feed

    @property
    def state(self) -> CounterDisplayState:
        return self._feed.state

    def force_refresh(self) -> asyncio.Task | None:
        return self._feed.force_refresh()

    def retry(self) -> asyncio.Task | None:
        return self._feed.retry()

    async def close(self) -> None:
        await self._feed.deactivate(self)

    async def __aenter__(self) -> FeedHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class LiveCounterFeed:
    """
    Keeps an animated signup count current from four sources:

      - one fetch on activate()
      - a poll every `refresh_interval` seconds
      - change-feed notifications (best-effort, low latency)
      - force_refresh(), called right after a successful signup

    Every fetch goes through with_retry(cache.get_cached). Poll and
    notification triggers join a fetch that is already running instead of
    starting another one. force_refresh() and retry() cancel any running
    fetch and start a fresh one; whichever fetch started last is the only
    one whose result is applied.
    """

    def __init__(
        self,
        cache: CountCache,
        on_value_change: Callable[[int], None],
        change_feed: IChangeFeed | None = None,
        on_state_change: Callable[[CounterDisplayState], None] | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        animation_duration: float = ANIMATION_DURATION,
        frame_interval: float = FRAME_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._cache              = cache
        self._on_value_change    = on_value_change
        self._change_feed        = change_feed
        self._on_state_change    = on_state_change
        self._refresh_interval   = refresh_interval
        self._max_attempts       = max_attempts
        self._animation_duration = animation_duration
        self._frame_interval     = frame_interval
        self._clock              = clock
        self._sleep              = sleep

        self._state = CounterDisplayState(committed_count=None, displayed_count=0, phase=CounterPhase.LOADING)
        self._active     = False
        self._generation = 0
        self._tasks: set[asyncio.Task] = set()
        self._fetch_task: asyncio.Task | None = None
        self._animation_task: asyncio.Task | None = None
        self._exit_stack: AsyncExitStack | None = None
        self._handle: FeedHandle | None = None

    @property
    def state(self) -> CounterDisplayState:
        return self._state

    @property
    def active(self) -> bool:
        return self._active

    # Lifecycle
    async def activate(self) -> FeedHandle:
        if self._active:
            raise RuntimeError("counter feed is already active")
        self._active = True
        self._exit_stack = AsyncExitStack()
        self._exit_stack.push_async_callback(self._cancel_tasks)

        self._request_fetch()
        self._spawn(self._poll_loop())

        if self._change_feed is not None:
            try:
                subscription = await self._change_feed.subscribe(self._on_change)
            except ChangeFeedError as exc:
                log.warning("Change feed unavailable, falling back to polling only: %s", exc)
            except BaseException:
                self._active = False
                stack, self._exit_stack = self._exit_stack, None
                await stack.aclose()
                raise
            else:
                self._exit_stack.push_async_callback(subscription.close)

        log.info("Counter feed active | poll every %.0fs | realtime=%s",
                 self._refresh_interval, self._change_feed is not None)
        self._handle = FeedHandle(self)
        return self._handle

    async def deactivate(self, handle: FeedHandle) -> None:
        if handle is not self._handle:
            raise ValueError("handle does not belong to this feed")
        if not self._active:
            return
        self._active = False
        self._handle = None
        stack, self._exit_stack = self._exit_stack, None
        await stack.aclose()
        log.info("Counter feed stopped")

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._fetch_task = None
        self._animation_task = None

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Counter feed task failed", exc_info=task.exception())

    # Triggers
    def force_refresh(self) -> asyncio.Task | None:
        """Drop the cached count and fetch now."""
        if not self._active:
            return None
        self._cache.invalidate()
        return self._request_fetch(fresh=True, retrying=True)

    def retry(self) -> asyncio.Task | None:
        """Manual retry after the feed landed in the error phase."""
        if not self._active:
            return None
        return self._request_fetch(fresh=True, retrying=True)

    def _on_change(self) -> None:
        if self._active:
            log.debug("Change notification received")
            self._request_fetch()

    async def _poll_loop(self) -> None:
        while True:
            await self._sleep(self._refresh_interval)
            self._request_fetch()

    def _request_fetch(self, fresh: bool = False, retrying: bool = False) -> asyncio.Task:
        in_flight = self._fetch_task
        if in_flight is not None and not in_flight.done():
            if not fresh:
                return in_flight
            log.debug("Cancelling superseded fetch #%d", self._generation)
            in_flight.cancel()
        self._generation += 1
        task = self._spawn(self._fetch(self._generation, retrying))
        self._fetch_task = task
        return task

    async def _fetch(self, generation: int, retrying: bool) -> None:
        if retrying:
            self._update(phase=CounterPhase.RETRYING, error_message=None)
        elif self._state.committed_count is None:
            self._update(phase=CounterPhase.LOADING, error_message=None)

        result = await with_retry(self._cache.get_cached, self._max_attempts, sleep=self._sleep)

        if not self._active or generation != self._generation:
            log.debug("Discarding result of superseded fetch #%d", generation)
            return

        if result.ok:
            self._commit(result.value)
        else:
            log.warning("Signup count unavailable: %s", result.error_message)
            self._update(phase=CounterPhase.ERROR, error_message=result.error_message)

    # State
    def _update(self, **changes: object) -> None:
        self._state = replace(self._state, **changes)
        if self._on_state_change is None or not self._active:
            return
        try:
            self._on_state_change(self._state)
        except Exception:
            log.exception("Counter state callback failed")

    def _emit_value(self, value: int) -> None:
        if not self._active:
            return
        try:
            self._on_value_change(value)
        except Exception:
            log.exception("Counter value callback failed")

    def _commit(self, count: int) -> None:
        previous = self._state.committed_count
        if previous is None:
            # first value: no animation from zero
            self._cancel_animation()
            self._update(committed_count=count, displayed_count=count, phase=CounterPhase.READY, error_message=None)
            self._emit_value(count)
            return

        self._update(committed_count=count, phase=CounterPhase.READY, error_message=None)
        if count != previous:
            self._start_animation(self._state.displayed_count, count)

    # Animation
    def _cancel_animation(self) -> None:
        if self._animation_task is not None and not self._animation_task.done():
            self._animation_task.cancel()
        self._animation_task = None

    def _start_animation(self, start: int, target: int) -> None:
        self._cancel_animation()
        self._animation_task = self._spawn(self._animate(start, target))

    async def _animate(self, start: int, target: int) -> None:
        began = self._clock()
        while True:
            if self._animation_duration > 0:
                progress = min((self._clock() - began) / self._animation_duration, 1.0)
            else:
                progress = 1.0
            value = interpolate(start, target, progress)
            if value != self._state.displayed_count:
                self._state = replace(self._state, displayed_count=value)
                self._emit_value(value)
            if progress >= 1.0:
                return
            await self._sleep(self._frame_interval)
