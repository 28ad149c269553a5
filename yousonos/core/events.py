"""
Event Bus for YouSonos.

This module provides a simple pub/sub event system so a caller (CLI, GUI)
can consume state changes of the core without polling it.

Event types:
- target.selected: The active speaker changed
- track.loaded: A new track was resolved and handed to the speaker
- track.ended: The playback clock reached the end of the track
- playback.status: Position/playing state changed (tick, seek, pause, stop)
- error: The background seek worker hit an error

Usage:
    bus = EventBus()

    async def on_status(event: PlaybackStatusEvent) -> None:
        print(event.position)

    await bus.subscribe("playback.status", on_status)
    await bus.publish(PlaybackStatusEvent(elapsed_seconds=3, total_seconds=10))
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["Event"], Coroutine[Any, Any, None]]


@dataclass
class Event:
    """Base class for all events."""

    event_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for JSON serialization."""
        return {"type": self.event_type}


@dataclass
class TargetSelectedEvent(Event):
    """Fired when the user picks a different speaker."""

    event_type: str = field(default="target.selected", init=False)
    name: str = ""
    control_base_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "name": self.name,
            "control_base_url": self.control_base_url,
        }


@dataclass
class TrackLoadedEvent(Event):
    """Fired when a resolved track was queued and started on the speaker."""

    event_type: str = field(default="track.loaded", init=False)
    title: str = ""
    video_id: str = ""
    duration_seconds: int = 0
    bridge_url: str = ""
    thumbnail_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "title": self.title,
            "video_id": self.video_id,
            "duration": self.duration_seconds,
            "bridge_url": self.bridge_url,
            "thumbnail_url": self.thumbnail_url,
        }


@dataclass
class TrackEndedEvent(Event):
    """Fired when the playback clock reaches the known track duration.

    This is distinct from a user stop: no stop command is sent to the speaker.
    """

    event_type: str = field(default="track.ended", init=False)
    total_seconds: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.event_type, "duration": self.total_seconds}


@dataclass
class PlaybackStatusEvent(Event):
    """Fired when the playback position or playing state changes."""

    event_type: str = field(default="playback.status", init=False)
    elapsed_seconds: int = 0
    total_seconds: int = 0
    is_playing: bool = False
    position: str = "00:00:00"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "elapsed": self.elapsed_seconds,
            "duration": self.total_seconds,
            "playing": self.is_playing,
            "position": self.position,
        }


@dataclass
class ErrorEvent(Event):
    """Fired when a background task fails and nobody is awaiting it."""

    event_type: str = field(default="error", init=False)
    source: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "source": self.source,
            "message": self.message,
        }


def topic_matches(pattern: str, event_type: str) -> bool:
    """
    Check a subscription pattern against an event type.

    "*" matches everything, "track.*" matches "track.loaded" and
    "track.ended" but not "track", anything else must match exactly.
    """
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return event_type.startswith(pattern[:-1])
    return pattern == event_type


class EventBus:
    """
    Async publish/subscribe hub between the core and its caller.

    Handlers run sequentially in subscription order, outside the bus lock,
    so a handler may itself publish or subscribe. A handler raising is
    logged and skipped; the publisher never sees the exception.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []
        self._lock = asyncio.Lock()

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """
        Register a handler for an event type or wildcard pattern.

        Args:
            pattern: Event type, "prefix.*", or "*".
            handler: Coroutine function receiving the event.
        """
        async with self._lock:
            self._subscriptions.append((pattern, handler))
        logger.debug("Handler %s subscribed to %s", handler, pattern)

    async def unsubscribe(self, pattern: str, handler: EventHandler) -> bool:
        """Remove one registration; False if it was not registered."""
        async with self._lock:
            try:
                self._subscriptions.remove((pattern, handler))
            except ValueError:
                return False
        logger.debug("Handler %s unsubscribed from %s", handler, pattern)
        return True

    async def publish(self, event: Event) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            How many handlers completed without raising.
        """
        async with self._lock:
            handlers = [
                handler
                for pattern, handler in self._subscriptions
                if topic_matches(pattern, event.event_type)
            ]

        delivered = 0
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Handler %s failed on %s", handler, event.event_type)
                continue
            delivered += 1

        if delivered:
            logger.debug("Delivered %s to %d handler(s)", event.event_type, delivered)
        return delivered

    async def clear(self) -> None:
        async with self._lock:
            self._subscriptions.clear()
