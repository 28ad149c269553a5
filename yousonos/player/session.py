"""
Control Session - drives the selected speaker over UPnP SOAP.

The session holds the currently selected Target and sends the control
actions to it:

    SetAVTransportURI, Play, Pause, Stop, Seek   (AVTransport)
    GetVolume, SetVolume                         (RenderingControl)

Every action is a blocking (awaited) HTTP round-trip with a timeout. Any
transport failure or non-success status raises ControlError; no retries.
Response bodies are ignored except for GetVolume.

Calling an action before select_target() raises NoTargetSelectedError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from yousonos.core import YouSonosError
from yousonos.protocol import soap

if TYPE_CHECKING:
    from yousonos.bridge.server import BridgeServer
    from yousonos.player.target import Target
    from yousonos.resolver import TrackInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class ControlError(YouSonosError):
    """Raised when a control action fails in transport or is rejected."""


class NoTargetSelectedError(ControlError):
    """Raised when a control action is attempted without a selected speaker."""


class ControlSession:
    """
    Sends control actions to the selected speaker.

    Usage:
        async with httpx.AsyncClient() as http:
            session = ControlSession(http, bridge_server)
            session.select_target(target)
            await session.play_resource(track)
            await session.set_volume(30)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        bridge: BridgeServer | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize the ControlSession.

        Args:
            http_client: Client used for SOAP requests.
            bridge: Bridge server used by play_resource to publish stream URLs.
            timeout: Per-request timeout in seconds.
        """
        self._http = http_client
        self._bridge = bridge
        self._timeout = timeout
        self._target: Target | None = None

    @property
    def target(self) -> Target | None:
        """The currently selected speaker, if any."""
        return self._target

    def select_target(self, target: Target) -> None:
        """
        Bind the session to a speaker, replacing any previous one.

        Requests already in flight against the old speaker are not cancelled.
        """
        if self._target is not None and self._target == target:
            return
        self._target = target
        logger.info("Selected target %s (%s)", target.name, target.control_base_url)

    def require_target(self) -> Target:
        if self._target is None:
            raise NoTargetSelectedError("No target selected")
        return self._target

    async def _send(self, request: soap.SoapRequest) -> httpx.Response:
        """POST a SOAP request to the selected speaker."""
        target = self.require_target()
        url = target.control_url(request.service.control_path)

        logger.debug("Sending %s to %s", request.action, url)

        try:
            response = await self._http.post(
                url,
                content=request.body.encode("utf-8"),
                headers=request.headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise ControlError(f"{request.action} failed: {e}") from e

        if response.is_error:
            raise ControlError(
                f"{request.action} rejected by {target.name}: HTTP {response.status_code}"
            )

        return response

    async def set_source_and_queue(self, url: str, title: str, art_url: str = "") -> None:
        """
        Point the speaker's transport at a media URL.

        Args:
            url: URL the speaker will fetch (normally a bridge URL).
            title: Track title shown on the speaker.
            art_url: Album art URL shown on the speaker.
        """
        metadata = soap.build_track_metadata(url, title, art_url)
        await self._send(soap.set_av_transport_uri(url, metadata))

    async def play(self) -> None:
        await self._send(soap.play())

    async def pause(self) -> None:
        await self._send(soap.pause())

    async def stop(self) -> None:
        await self._send(soap.stop())

    async def seek(self, seconds: int) -> None:
        """Seek to an absolute position in seconds."""
        if seconds < 0:
            raise ValueError(f"Seek position must not be negative: {seconds}")
        await self._send(soap.seek(seconds))

    async def get_volume(self) -> int:
        """
        Read the speaker's master volume.

        An unparseable response yields 0 rather than an error; see
        soap.parse_volume.
        """
        response = await self._send(soap.get_volume())
        return soap.parse_volume(response.content)

    async def set_volume(self, percent: int) -> None:
        """Set the speaker's master volume (0-100)."""
        if not 0 <= percent <= 100:
            raise ValueError(f"Volume must be between 0 and 100: {percent}")
        await self._send(soap.set_volume(percent))

    async def play_resource(self, track: TrackInfo) -> str:
        """
        Play a resolved track through the bridge.

        Registers the stream URL with the bridge, hands the resulting local
        URL to the speaker, then starts playback.

        Returns:
            The bridge URL given to the speaker.
        """
        self.require_target()
        if self._bridge is None:
            raise ControlError("No bridge server configured")

        bridge_url = await self._bridge.publish(track.stream_url)
        logger.info("Queueing %r via %s", track.title, bridge_url)

        await self.set_source_and_queue(bridge_url, track.title, track.thumbnail_url)
        await self.play()
        return bridge_url
