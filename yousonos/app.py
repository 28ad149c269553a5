"""
YouSonos - Application Module

This module contains the YouSonosApp class that owns every core component
and exposes the operations a caller (CLI, GUI) triggers from user actions.

Ownership:
    - One httpx.AsyncClient shared by discovery, control, and resolver
    - BridgeRegistry + BridgeServer (handles live as long as the process)
    - TargetRegistry (speakers from the last discovery, deduped by authority)
    - ControlSession (the selected speaker)
    - PositionTracker (playback clock + seek debounce)
    - EventBus (state changes for the caller)
    - StateStore (remembered speaker name)

NOTE ON STATE ORDERING:
State only changes after the speaker accepted the corresponding action.
A failed Play leaves the clock stopped, a failed Stop leaves the position
untouched, and a failed resolution registers nothing.
"""

from __future__ import annotations

import asyncio
import logging
import signal

import httpx

from yousonos.bridge.registry import BridgeRegistry
from yousonos.bridge.server import BridgeServer
from yousonos.config import AppConfig, StateStore, get_config
from yousonos.core import YouSonosError
from yousonos.core.events import EventBus, TargetSelectedEvent, TrackLoadedEvent
from yousonos.playback.tracker import PlaybackState, PositionTracker
from yousonos.player.registry import TargetRegistry
from yousonos.player.session import ControlSession
from yousonos.player.target import Target
from yousonos.protocol.discovery import DiscoveryClient
from yousonos.resolver import InvidiousResolver, Resolver, TrackInfo

logger = logging.getLogger(__name__)


class TargetNotFoundError(YouSonosError):
    """Raised when a speaker name is not in the discovered list."""


class YouSonosApp:
    """
    Main YouSonos application that coordinates all components.

    Usage:
        app = YouSonosApp()
        await app.start()
        await app.play_url("https://youtu.be/dQw4w9WgXcQ")
        ...
        await app.stop()
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        resolver: Resolver | None = None,
        state_store: StateStore | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        """
        Initialize the application.

        Args:
            config: Loaded configuration (defaults when omitted).
            http_client: Shared HTTP client (created and owned when omitted).
            resolver: Metadata resolver (Invidious when omitted).
            state_store: Persisted state (config.state_path when omitted).
            event_bus: Event bus for state changes (private when omitted).
        """
        self.config = config or get_config()

        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(follow_redirects=True)

        self.event_bus = event_bus or EventBus()
        self.state_store = state_store or StateStore(self.config.state_path)

        self.bridge_registry = BridgeRegistry()
        self.bridge_server = BridgeServer(
            self.bridge_registry,
            host=self.config.bridge.host,
            port=self.config.bridge.port,
            advertise_address=self.config.bridge.advertise_address,
        )

        self.discovery = DiscoveryClient(self.http)
        self.targets = TargetRegistry()

        self.session = ControlSession(
            self.http,
            bridge=self.bridge_server,
            timeout=self.config.control.timeout_seconds,
        )

        self.resolver: Resolver = resolver or InvidiousResolver(
            self.http, base_url=self.config.resolver.invidious_base_url
        )

        self.tracker = PositionTracker(
            seek_executor=self.session.seek,
            event_bus=self.event_bus,
        )

        self._running = False
        self._shutdown_event: asyncio.Event | None = None

    async def start(self, *, serve_bridge: bool = True, restore_target: bool = True) -> None:
        """
        Start the bridge server and restore the remembered speaker.

        Args:
            serve_bridge: Start the redirect server (needed to play tracks).
            restore_target: Run discovery and reselect the remembered speaker.
        """
        logger.info("Starting YouSonos")
        self._running = True
        self._shutdown_event = asyncio.Event()

        if serve_bridge:
            await self.bridge_server.start()

        if restore_target:
            await self.restore_target()

    async def stop(self) -> None:
        """Stop all components."""
        if self._running:
            logger.info("Stopping YouSonos...")
            self._running = False

            await self.tracker.close()
            await self.bridge_server.stop()

            if self._shutdown_event:
                self._shutdown_event.set()

            logger.info("YouSonos stopped")

        if self._owns_http and not self.http.is_closed:
            await self.http.aclose()

    async def run_until_shutdown(self) -> None:
        """Wait for SIGINT/SIGTERM or stop(), then shut down."""
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            if self._shutdown_event:
                self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    def request_shutdown(self) -> None:
        if self._shutdown_event:
            self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Speakers
    # ------------------------------------------------------------------

    async def discover(self) -> list[Target]:
        """
        Run discovery and refresh the speaker list.

        Returns:
            Distinct speakers, first-discovered order.
        """
        found = await self.discovery.discover(
            self.config.discovery.service_type,
            self.config.discovery.window_seconds,
        )
        await self.targets.replace_all(found)
        return await self.targets.get_all()

    async def select_target(self, name: str, *, remember: bool = True) -> Target:
        """
        Make a discovered speaker the active one.

        Selecting a different speaker resets the playback clock, since the
        old position means nothing on the new speaker.

        Raises:
            TargetNotFoundError: If no discovered speaker has that name.
        """
        target = await self.targets.get_by_name(name)
        if target is None:
            raise TargetNotFoundError(f"No speaker named {name!r}")

        if self.session.target == target:
            return target

        self.session.select_target(target)
        await self.tracker.load_track(0)

        if remember:
            self.state_store.active_device = target.name

        await self.event_bus.publish(
            TargetSelectedEvent(name=target.name, control_base_url=target.control_base_url)
        )
        return target

    async def restore_target(self) -> Target | None:
        """
        Reselect the speaker remembered from the previous run.

        Discovery failures are logged, not raised: the app stays usable and
        the user can pick a speaker later.
        """
        name = self.state_store.active_device
        if not name:
            logger.info("No speaker selected yet")
            return None

        try:
            await self.discover()
            return await self.select_target(name, remember=False)
        except YouSonosError as e:
            logger.warning("Could not restore speaker %r: %s", name, e)
            return None

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def play_url(self, url: str) -> TrackInfo:
        """
        Resolve a video URL and play its audio on the active speaker.

        Raises:
            ResolveError: The URL is not recognized or the lookup failed.
            ControlError: The speaker rejected the track or Play.
        """
        self.session.require_target()
        track = await self.resolver.resolve(url)
        bridge_url = await self.session.play_resource(track)

        await self.tracker.load_track(track.duration_seconds)
        await self.tracker.start()

        await self.event_bus.publish(
            TrackLoadedEvent(
                title=track.title,
                video_id=track.video_id,
                duration_seconds=track.duration_seconds,
                bridge_url=bridge_url,
                thumbnail_url=track.thumbnail_url,
            )
        )
        return track

    async def play(self) -> None:
        """Resume playback of the queued track."""
        await self.session.play()
        await self.tracker.start()

    async def pause(self) -> None:
        await self.session.pause()
        await self.tracker.pause()

    async def stop_playback(self) -> None:
        """Stop the speaker, then reset the position."""
        await self.session.stop()
        await self.tracker.stop()

    async def request_seek(self, seconds: int) -> None:
        """Debounced seek, for slider-driven callers."""
        self.session.require_target()
        await self.tracker.request_seek(seconds)

    async def get_volume(self) -> int:
        return await self.session.get_volume()

    async def set_volume(self, percent: int) -> None:
        await self.session.set_volume(percent)

    async def playback_state(self) -> PlaybackState:
        return await self.tracker.snapshot()
