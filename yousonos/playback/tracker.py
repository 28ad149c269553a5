"""
Position Tracker for YouSonos.

The speaker is not polled for its position. Instead the tracker runs a local
playback clock and corrects it whenever the user seeks. Two independent
concerns share one state block:

1. Playback clock (IDLE / RUNNING)
   - start() after a successful Play: RUNNING.
   - A ticker adds one second per period while RUNNING.
   - Reaching the known track duration returns to IDLE without sending
     Stop to the speaker (the track ended on its own).
   - pause(): IDLE, position kept. stop(): IDLE, position reset to 0.

2. Seek debounce
   While the user drags a slider, every change is recorded immediately so the
   displayed position follows the slider with no latency, but the Seek action
   is deferred. A single worker polls every 100ms and, once 500ms have passed
   since the latest change, sends exactly one seek with the latest value.
   Changes arriving while the worker is active never start a second worker.

All state lives in PlaybackState behind one asyncio lock. Callers only get
copies via snapshot().
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from yousonos.core.events import ErrorEvent, PlaybackStatusEvent, TrackEndedEvent
from yousonos.protocol.soap import format_hms

if TYPE_CHECKING:
    from yousonos.core.events import Event, EventBus

logger = logging.getLogger(__name__)

TICK_INTERVAL_SECONDS = 1.0

SEEK_POLL_INTERVAL_SECONDS = 0.1

# Quiet period after the last slider change before the seek is sent
SEEK_QUIET_PERIOD_SECONDS = 0.5

SeekExecutor = Callable[[int], Coroutine[Any, Any, None]]


class ClockState(Enum):
    """States of the playback clock."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass
class PlaybackState:
    """Playback position and seek bookkeeping."""

    elapsed_seconds: int = 0
    total_seconds: int = 0
    is_playing: bool = False
    last_seek_requested_at: float | None = None
    seek_debounce_in_flight: bool = False
    pending_seek_seconds: int | None = None

    @property
    def clock_state(self) -> ClockState:
        return ClockState.RUNNING if self.is_playing else ClockState.IDLE

    @property
    def display_seconds(self) -> int:
        """Position to show: a pending slider value wins over the clock."""
        if self.seek_debounce_in_flight and self.pending_seek_seconds is not None:
            return self.pending_seek_seconds
        return self.elapsed_seconds

    @property
    def position(self) -> str:
        """Displayed position as HH:MM:SS."""
        return format_hms(self.display_seconds)

    @property
    def reached_end(self) -> bool:
        """True once the clock hit a known duration."""
        return self.total_seconds > 0 and self.elapsed_seconds >= self.total_seconds


class PositionTracker:
    """
    Playback clock plus debounced seek coordinator.

    Usage:
        tracker = PositionTracker(seek_executor=session.seek, event_bus=bus)
        await tracker.load_track(total_seconds=212)
        await tracker.start()
        await tracker.request_seek(90)   # from a slider callback

    The seek_executor performs the actual Seek action:
        async def seek_executor(seconds: int) -> None: ...

    A track with an unknown duration (total_seconds == 0) runs until paused
    or stopped.
    """

    def __init__(
        self,
        seek_executor: SeekExecutor,
        event_bus: EventBus | None = None,
        *,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        poll_interval: float = SEEK_POLL_INTERVAL_SECONDS,
        quiet_period: float = SEEK_QUIET_PERIOD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            seek_executor: Coroutine function sending the Seek action.
            event_bus: Optional bus receiving status/ended/error events.
            tick_interval: Playback clock period in seconds.
            poll_interval: Seek worker poll period in seconds.
            quiet_period: Required quiet time before a seek is sent.
            clock: Monotonic time source for the debounce.
        """
        self._seek_executor = seek_executor
        self._event_bus = event_bus
        self._tick_interval = tick_interval
        self._poll_interval = poll_interval
        self._quiet_period = quiet_period
        self._clock = clock

        self._state = PlaybackState()
        self._lock = asyncio.Lock()

        self._ticker_task: asyncio.Task[None] | None = None
        self._seek_task: asyncio.Task[None] | None = None

    async def snapshot(self) -> PlaybackState:
        """Return a copy of the current state."""
        async with self._lock:
            return replace(self._state)

    @property
    def clock_state(self) -> ClockState:
        return self._state.clock_state

    @property
    def seek_in_flight(self) -> bool:
        return self._state.seek_debounce_in_flight

    # ------------------------------------------------------------------
    # Playback clock
    # ------------------------------------------------------------------

    async def load_track(self, total_seconds: int) -> None:
        """Reset the clock for a newly queued track of the given duration."""
        self._cancel_ticker()
        async with self._lock:
            self._drop_pending_seek()
            self._state.elapsed_seconds = 0
            self._state.total_seconds = max(0, total_seconds)
            self._state.is_playing = False
            snapshot = replace(self._state)
        logger.debug("Loaded track (%ds)", snapshot.total_seconds)
        await self._publish_status(snapshot)

    async def start(self) -> None:
        """Start the clock after the speaker accepted Play."""
        async with self._lock:
            # Playing again after the end restarts the track
            if self._state.reached_end:
                self._state.elapsed_seconds = 0
            self._state.is_playing = True
            snapshot = replace(self._state)

        if self._ticker_task is None or self._ticker_task.done():
            self._ticker_task = asyncio.create_task(self._run_ticker())

        await self._publish_status(snapshot)

    async def pause(self) -> None:
        """Stop the clock, keeping the position."""
        self._cancel_ticker()
        async with self._lock:
            self._state.is_playing = False
            snapshot = replace(self._state)
        await self._publish_status(snapshot)

    async def stop(self) -> None:
        """Stop the clock and reset the position to zero."""
        self._cancel_ticker()
        async with self._lock:
            self._drop_pending_seek()
            self._state.is_playing = False
            self._state.elapsed_seconds = 0
            snapshot = replace(self._state)
        await self._publish_status(snapshot)

    async def tick(self) -> bool:
        """
        Advance the clock by one second.

        Returns:
            True if the clock is still running afterwards.
        """
        ended = False
        async with self._lock:
            state = self._state
            if not state.is_playing:
                return False

            if not state.reached_end:
                state.elapsed_seconds += 1

            if state.reached_end:
                state.is_playing = False
                ended = True

            snapshot = replace(state)

        await self._publish_status(snapshot)

        if ended:
            logger.info("Track reached its end (%ds)", snapshot.total_seconds)
            await self._publish(TrackEndedEvent(total_seconds=snapshot.total_seconds))

        return snapshot.is_playing

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            await self.tick()
            # An ended-event handler may have restarted playback meanwhile
            async with self._lock:
                if not self._state.is_playing:
                    break

    def _cancel_ticker(self) -> None:
        if self._ticker_task is not None and not self._ticker_task.done():
            self._ticker_task.cancel()
        self._ticker_task = None

    def _drop_pending_seek(self) -> None:
        """Cancel the seek worker and forget the slider value. Caller holds the lock."""
        if self._seek_task is not None and not self._seek_task.done():
            self._seek_task.cancel()
        self._seek_task = None
        self._state.seek_debounce_in_flight = False
        self._state.pending_seek_seconds = None
        self._state.last_seek_requested_at = None

    # ------------------------------------------------------------------
    # Seek debounce
    # ------------------------------------------------------------------

    async def request_seek(self, seconds: int) -> None:
        """
        Record a slider change and schedule a debounced seek.

        Returns immediately; the Seek action is sent by the worker once the
        slider has been quiet for the quiet period.
        """
        seconds = max(0, seconds)
        async with self._lock:
            state = self._state
            if state.total_seconds > 0:
                seconds = min(seconds, state.total_seconds)
            state.pending_seek_seconds = seconds
            state.last_seek_requested_at = self._clock()

            start_worker = not state.seek_debounce_in_flight
            if start_worker:
                state.seek_debounce_in_flight = True
            snapshot = replace(state)

        if start_worker:
            self._seek_task = asyncio.create_task(self._run_seek_worker())
            logger.debug("Seek worker started")

        await self._publish_status(snapshot)

    async def _run_seek_worker(self) -> None:
        # Cancellation cleanup is done by the canceller under the lock
        while True:
            target, requested_at = await self._wait_for_quiet()

            try:
                await self._seek_executor(target)
            except Exception as e:
                logger.warning("Seek to %s failed: %s", format_hms(target), e)
                await self._publish(ErrorEvent(source="seek", message=str(e)))

            async with self._lock:
                state = self._state
                state.elapsed_seconds = target
                if state.last_seek_requested_at != requested_at:
                    # The slider moved while the seek was in flight
                    superseded = True
                else:
                    superseded = False
                    state.seek_debounce_in_flight = False
                    state.pending_seek_seconds = None
                snapshot = replace(state)

            logger.debug("Seek to %s sent", format_hms(target))
            await self._publish_status(snapshot)

            if not superseded:
                break

    async def _wait_for_quiet(self) -> tuple[int, float]:
        """Poll until the slider has been quiet long enough."""
        while True:
            await asyncio.sleep(self._poll_interval)
            async with self._lock:
                state = self._state
                requested_at = state.last_seek_requested_at
                if requested_at is None or state.pending_seek_seconds is None:
                    continue
                if self._clock() - requested_at >= self._quiet_period:
                    target = state.pending_seek_seconds
                    if state.total_seconds > 0:
                        target = min(target, state.total_seconds)
                    return target, requested_at

    # ------------------------------------------------------------------
    # Lifecycle / events
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel background tasks (process shutdown)."""
        async with self._lock:
            tasks = [t for t in (self._ticker_task, self._seek_task) if t is not None]
            self._drop_pending_seek()
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._ticker_task = None

    async def _publish_status(self, state: PlaybackState) -> None:
        await self._publish(
            PlaybackStatusEvent(
                elapsed_seconds=state.display_seconds,
                total_seconds=state.total_seconds,
                is_playing=state.is_playing,
                position=state.position,
            )
        )

    async def _publish(self, event: Event) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event)
