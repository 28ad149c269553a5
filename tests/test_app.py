"""
Tests for YouSonosApp.

The speaker is a MockTransport stub; discovery and resolution are faked so
the tests exercise the ordering between control actions and local state.
"""

from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from yousonos.app import TargetNotFoundError, YouSonosApp
from yousonos.config import AppConfig, BridgeConfig, StateStore
from yousonos.core.events import Event
from yousonos.playback.tracker import ClockState
from yousonos.player.session import ControlError, NoTargetSelectedError
from yousonos.player.target import Target
from yousonos.resolver import ResolveError, TrackInfo

KITCHEN = Target(name="Kitchen (One)", control_base_url="http://192.168.1.20:1400")
DEN = Target(name="Den (Play:1)", control_base_url="http://192.168.1.21:1400")

TRACK = TrackInfo(
    title="Song",
    stream_url="https://invidious.example/videoplayback?id=abc&itag=18",
    thumbnail_url="https://i.ytimg.com/vi/abc/maxresdefault.jpg",
    duration_seconds=212,
    video_id="abc",
)


class FakeResolver:
    def __init__(self, track: TrackInfo | None = None) -> None:
        self.track = track
        self.urls: list[str] = []

    async def resolve(self, url: str) -> TrackInfo:
        self.urls.append(url)
        if self.track is None:
            raise ResolveError("url is not a YouTube url")
        return self.track


class Speaker:
    """Records SOAP actions; fails the ones listed in `failing`."""

    def __init__(self) -> None:
        self.actions: list[str] = []
        self.failing: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        action = request.headers["SOAPACTION"].rsplit("#", 1)[1]
        self.actions.append(action)
        if action in self.failing:
            return httpx.Response(500)
        return httpx.Response(200)


@pytest.fixture
def speaker() -> Speaker:
    return Speaker()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver(TRACK)


@pytest.fixture
async def app(tmp_path: Path, speaker: Speaker, resolver: FakeResolver):
    config = AppConfig(
        bridge=BridgeConfig(port=9372, advertise_address="192.168.1.5"),
        state_path=tmp_path / "state.json",
    )
    http = httpx.AsyncClient(transport=httpx.MockTransport(speaker.handler))
    app = YouSonosApp(
        config,
        http_client=http,
        resolver=resolver,
        state_store=StateStore(config.state_path),
    )
    app.discovery.discover = AsyncMock(return_value=[KITCHEN, DEN, KITCHEN])
    await app.start(serve_bridge=False, restore_target=False)
    yield app
    await app.stop()
    await http.aclose()


class TestSpeakerSelection:
    """Tests for discovery and selection."""

    async def test_discover_dedupes(self, app: YouSonosApp) -> None:
        targets = await app.discover()
        assert targets == [KITCHEN, DEN]

    async def test_select_persists_name(self, app: YouSonosApp) -> None:
        await app.discover()
        target = await app.select_target("Den (Play:1)")

        assert target == DEN
        assert app.session.target == DEN
        assert app.state_store.active_device == "Den (Play:1)"

    async def test_select_unknown(self, app: YouSonosApp) -> None:
        await app.discover()
        with pytest.raises(TargetNotFoundError):
            await app.select_target("Garage")

    async def test_select_publishes_event(self, app: YouSonosApp) -> None:
        received: list[Event] = []

        async def on_selected(event: Event) -> None:
            received.append(event)

        await app.event_bus.subscribe("target.selected", on_selected)
        await app.discover()
        await app.select_target("Kitchen (One)")
        await app.select_target("Kitchen (One)")

        assert len(received) == 1
        assert received[0].control_base_url == KITCHEN.control_base_url

    async def test_restore_remembered(self, app: YouSonosApp) -> None:
        app.state_store.active_device = "Den (Play:1)"
        assert await app.restore_target() == DEN
        assert app.session.target == DEN

    async def test_restore_missing_speaker(self, app: YouSonosApp) -> None:
        app.state_store.active_device = "Garage"
        assert await app.restore_target() is None
        assert app.session.target is None


class TestPlayback:
    """Tests for play/pause/stop ordering."""

    async def _select(self, app: YouSonosApp) -> None:
        await app.discover()
        await app.select_target("Kitchen (One)")

    async def test_play_url(self, app: YouSonosApp, speaker: Speaker) -> None:
        await self._select(app)
        received: list[Event] = []

        async def on_loaded(event: Event) -> None:
            received.append(event)

        await app.event_bus.subscribe("track.loaded", on_loaded)

        track = await app.play_url("https://youtu.be/abc1234")

        assert track is TRACK
        assert speaker.actions == ["SetAVTransportURI", "Play"]
        assert await app.bridge_registry.resolve(1) == TRACK.stream_url

        state = await app.playback_state()
        assert state.total_seconds == 212
        assert state.clock_state is ClockState.RUNNING
        assert received[0].bridge_url == "http://192.168.1.5:9372/1.mp4"

    async def test_play_url_without_target(
        self, app: YouSonosApp, resolver: FakeResolver
    ) -> None:
        with pytest.raises(NoTargetSelectedError):
            await app.play_url("https://youtu.be/abc1234")
        assert resolver.urls == []

    async def test_resolve_failure_changes_nothing(
        self, app: YouSonosApp, speaker: Speaker, resolver: FakeResolver
    ) -> None:
        await self._select(app)
        resolver.track = None

        with pytest.raises(ResolveError):
            await app.play_url("https://example.com/x")

        assert len(app.bridge_registry) == 0
        assert speaker.actions == []

    async def test_rejected_play_leaves_clock_idle(
        self, app: YouSonosApp, speaker: Speaker
    ) -> None:
        await self._select(app)
        speaker.failing.add("Play")

        with pytest.raises(ControlError):
            await app.play_url("https://youtu.be/abc1234")

        assert (await app.playback_state()).clock_state is ClockState.IDLE

    async def test_pause_and_resume(self, app: YouSonosApp, speaker: Speaker) -> None:
        await self._select(app)
        await app.play_url("https://youtu.be/abc1234")
        await app.tracker.tick()

        await app.pause()
        state = await app.playback_state()
        assert state.clock_state is ClockState.IDLE
        assert state.elapsed_seconds == 1

        await app.play()
        assert (await app.playback_state()).clock_state is ClockState.RUNNING
        assert speaker.actions[-2:] == ["Pause", "Play"]

    async def test_stop_resets_position(self, app: YouSonosApp) -> None:
        await self._select(app)
        await app.play_url("https://youtu.be/abc1234")
        await app.tracker.tick()

        await app.stop_playback()

        state = await app.playback_state()
        assert state.elapsed_seconds == 0
        assert state.clock_state is ClockState.IDLE

    async def test_failed_stop_keeps_position(self, app: YouSonosApp, speaker: Speaker) -> None:
        await self._select(app)
        await app.play_url("https://youtu.be/abc1234")
        await app.tracker.tick()
        speaker.failing.add("Stop")

        with pytest.raises(ControlError):
            await app.stop_playback()

        assert (await app.playback_state()).elapsed_seconds == 1

    async def test_seek_requires_target(self, app: YouSonosApp) -> None:
        with pytest.raises(NoTargetSelectedError):
            await app.request_seek(10)

    async def test_switching_speaker_resets_clock(self, app: YouSonosApp) -> None:
        await self._select(app)
        await app.play_url("https://youtu.be/abc1234")
        await app.tracker.tick()

        await app.select_target("Den (Play:1)")

        state = await app.playback_state()
        assert state.elapsed_seconds == 0
        assert state.clock_state is ClockState.IDLE


class TestLifecycle:
    async def test_stop_closes_owned_client(self, tmp_path: Path) -> None:
        app = YouSonosApp(
            AppConfig(state_path=tmp_path / "state.json"),
            resolver=FakeResolver(),
        )
        await app.stop()
        assert app.http.is_closed

    async def test_stop_keeps_borrowed_client(self, app: YouSonosApp) -> None:
        await app.stop()
        assert not app.http.is_closed
        assert app.is_running is False
