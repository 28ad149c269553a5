"""
SSDP Discovery for YouSonos.

This module finds speakers on the local network with a single SSDP
M-SEARCH query and resolves the replies into Targets.

Discovery Protocol:
    - One M-SEARCH datagram is sent to the multicast group 239.255.255.250:1900
      with ST set to the wanted device/service type and MX: 1.
    - Devices answer with an HTTP-response-shaped datagram whose LOCATION
      header points at their XML description document.
    - Replies are collected until a fixed deadline (not per packet).

Only replies whose ST equals the query exactly are kept; anything else is
dropped without fetching its description. A description fetch failure skips
that device only. Failing to open the socket or send the query is fatal.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

import httpx

from yousonos.core import YouSonosError
from yousonos.player.target import Target

logger = logging.getLogger(__name__)

SSDP_MULTICAST_ADDR = "239.255.255.250"
SSDP_PORT = 1900

# Sonos speakers advertise themselves as ZonePlayers
DEFAULT_SERVICE_TYPE = "urn:schemas-upnp-org:device:ZonePlayer:1"

DEFAULT_WINDOW_SECONDS = 2.0

# Response-wait hint sent to devices
SEARCH_MX = 1

# Largest datagram we are willing to parse
MAX_REPLY_SIZE = 65536


class DiscoveryError(YouSonosError):
    """Raised when the discovery query cannot be sent at all."""


@dataclass
class DiscoveryReply:
    """Headers of one SSDP search response. Keys are lower-cased."""

    headers: dict[str, str] = field(default_factory=dict)
    address: tuple[str, int] | None = None

    @property
    def search_target(self) -> str:
        return self.headers.get("st", "")

    @property
    def location(self) -> str:
        return self.headers.get("location", "")


def build_search_request(service_type: str, mx: int = SEARCH_MX) -> bytes:
    """Build the M-SEARCH datagram for a service type."""
    lines = [
        "M-SEARCH * HTTP/1.1",
        f"HOST: {SSDP_MULTICAST_ADDR}:{SSDP_PORT}",
        'MAN: "ssdp:discover"',
        f"ST: {service_type}",
        f"MX: {mx}",
        "",
        "",
    ]
    return "\r\n".join(lines).encode("ascii")


def parse_search_response(
    data: bytes, address: tuple[str, int] | None = None
) -> DiscoveryReply | None:
    """
    Parse an SSDP search response datagram.

    Returns:
        The parsed reply, or None if the datagram is not an HTTP response.
    """
    text = data.decode("utf-8", errors="replace")
    lines = text.replace("\r\n", "\n").split("\n")
    if not lines or not lines[0].upper().startswith("HTTP/"):
        return None

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line.strip():
            break
        name, sep, value = line.partition(":")
        if not sep:
            continue
        headers[name.strip().lower()] = value.strip()

    return DiscoveryReply(headers=headers, address=address)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(parent: ET.Element, name: str) -> str:
    for child in parent:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def parse_description(body: bytes | str) -> str:
    """
    Build a human-readable name from a device description document.

    Sonos descriptions carry `roomName` and `displayName` on the device
    element; the name is "Room (Display)". Generic UPnP devices fall back to
    `friendlyName`.

    Raises:
        ET.ParseError: If the document is not XML.
        ValueError: If it has no device element.
    """
    root = ET.fromstring(body)
    device = next((el for el in root if _local_name(el.tag) == "device"), None)
    if device is None:
        raise ValueError("Description document has no device element")

    room = _child_text(device, "roomName") or _child_text(device, "friendlyName")
    display = _child_text(device, "displayName")
    if display:
        return f"{room} ({display})"
    return room


class SSDPSearchProtocol(asyncio.DatagramProtocol):
    """
    Asyncio UDP protocol collecting SSDP search responses.

    Replies are parsed as they arrive and kept in arrival order.
    """

    def __init__(self) -> None:
        self.transport: asyncio.DatagramTransport | None = None
        self.replies: list[DiscoveryReply] = []

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        reply = parse_search_response(data[:MAX_REPLY_SIZE], addr)
        if reply is None:
            logger.debug("Ignoring non-response datagram from %s:%d", addr[0], addr[1])
            return
        self.replies.append(reply)

    def error_received(self, exc: Exception) -> None:
        logger.warning("SSDP socket error: %s", exc)


class DiscoveryClient:
    """
    Finds speakers advertising a service type on the local network.

    Usage:
        async with httpx.AsyncClient() as http:
            client = DiscoveryClient(http)
            targets = await client.discover(DEFAULT_SERVICE_TYPE)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        multicast_addr: tuple[str, int] = (SSDP_MULTICAST_ADDR, SSDP_PORT),
    ) -> None:
        """
        Initialize the discovery client.

        Args:
            http_client: Client used to fetch description documents.
            multicast_addr: Where to send the search query.
        """
        self._http = http_client
        self._multicast_addr = multicast_addr

    async def search(self, service_type: str, window: float) -> list[DiscoveryReply]:
        """
        Send one M-SEARCH query and collect replies until the window ends.

        Raises:
            DiscoveryError: If the socket cannot be opened or the query sent.
        """
        loop = asyncio.get_running_loop()
        request = build_search_request(service_type)

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        except OSError as e:
            raise DiscoveryError(f"Could not open discovery socket: {e}") from e

        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
            sock.bind(("", 0))
            sock.setblocking(False)
            sock.sendto(request, self._multicast_addr)
        except OSError as e:
            sock.close()
            raise DiscoveryError(f"Could not send discovery query: {e}") from e

        logger.debug("Sent M-SEARCH for %s, listening for %.1fs", service_type, window)

        transport, protocol = await loop.create_datagram_endpoint(
            SSDPSearchProtocol, sock=sock
        )
        try:
            await asyncio.sleep(window)
        finally:
            transport.close()

        logger.debug("Collected %d SSDP replies", len(protocol.replies))
        return list(protocol.replies)

    async def fetch_target(self, location: str) -> Target:
        """
        Fetch a description document and build a Target from it.

        Raises:
            httpx.HTTPError: On transport failure or non-success status.
            ET.ParseError / ValueError: If the document is unusable.
        """
        response = await self._http.get(location)
        response.raise_for_status()
        name = parse_description(response.content)
        return Target.from_location(name, location)

    async def discover(
        self,
        service_type: str = DEFAULT_SERVICE_TYPE,
        window: float = DEFAULT_WINDOW_SECONDS,
    ) -> list[Target]:
        """
        Discover speakers advertising service_type.

        Args:
            service_type: Exact ST value to query and to accept.
            window: Seconds to collect replies for.

        Returns:
            Targets in reply-arrival order. Duplicates are not removed here.

        Raises:
            DiscoveryError: If the query could not be sent.
        """
        replies = await self.search(service_type, window)
        return await self.resolve_replies(replies, service_type)

    async def resolve_replies(
        self, replies: list[DiscoveryReply], service_type: str
    ) -> list[Target]:
        """Filter replies by service type and resolve each into a Target."""
        targets: list[Target] = []

        for reply in replies:
            if reply.search_target != service_type:
                logger.debug(
                    "Ignoring SSDP reply with ST %r (wanted %r)",
                    reply.search_target,
                    service_type,
                )
                continue

            if not reply.location:
                logger.debug("Ignoring SSDP reply without LOCATION from %s", reply.address)
                continue

            try:
                target = await self.fetch_target(reply.location)
            except (httpx.HTTPError, ET.ParseError, ValueError) as e:
                logger.warning("Skipping device at %s: %s", reply.location, e)
                continue

            logger.info("Discovered %s at %s", target.name, target.control_base_url)
            targets.append(target)

        return targets
