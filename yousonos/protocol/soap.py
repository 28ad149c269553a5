"""
SOAP envelope codec for the UPnP AVTransport and RenderingControl services.

Every control request is an HTTP POST of a SOAP envelope naming exactly one
action, plus a SOAPACTION header identifying the service and action:

    <s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" ...>
      <s:Body>
        <u:Play xmlns:u="urn:schemas-upnp-org:service:AVTransport:1">
          <InstanceID>0</InstanceID>
          <Speed>1</Speed>
        </u:Play>
      </s:Body>
    </s:Envelope>

Argument values are always XML-escaped. SetAVTransportURI carries a nested
DIDL-Lite document which is built first and then escaped as a whole.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from xml.sax.saxutils import escape

logger = logging.getLogger(__name__)

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
SOAP_ENCODING_STYLE = "http://schemas.xmlsoap.org/soap/encoding/"

CONTENT_TYPE = 'text/xml; charset="utf8"'


class Service(Enum):
    """UPnP services used by the control session, with their control path."""

    AV_TRANSPORT = ("AVTransport", "/MediaRenderer/AVTransport/Control")
    RENDERING_CONTROL = ("RenderingControl", "/MediaRenderer/RenderingControl/Control")

    def __init__(self, service_name: str, control_path: str) -> None:
        self.service_name = service_name
        self.control_path = control_path

    @property
    def urn(self) -> str:
        """Service type URN, e.g. urn:schemas-upnp-org:service:AVTransport:1."""
        return f"urn:schemas-upnp-org:service:{self.service_name}:1"


@dataclass(frozen=True, slots=True)
class SoapRequest:
    """A ready-to-send control request."""

    service: Service
    action: str
    body: str

    @property
    def soap_action(self) -> str:
        """Value of the SOAPACTION header."""
        return f"{self.service.urn}#{self.action}"

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": CONTENT_TYPE,
            "SOAPACTION": self.soap_action,
        }


def format_hms(seconds: int) -> str:
    """
    Format a second count as zero-padded HH:MM:SS.

    Hours are not wrapped, so 360000 seconds is "100:00:00".
    """
    hours = seconds // 3600
    minutes = (seconds // 60) % 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def build_envelope(service: Service, action: str, arguments: list[tuple[str, str]]) -> str:
    """
    Build a SOAP envelope for one action.

    Args:
        service: Service the action belongs to.
        action: Action name, e.g. "Play".
        arguments: Ordered (name, value) pairs. InstanceID is always sent first.

    Returns:
        The envelope as a string.
    """
    args = [("InstanceID", "0"), *arguments]
    rendered = "".join(f"<{name}>{escape(value)}</{name}>" for name, value in args)
    return (
        '<?xml version="1.0"?>'
        f'<s:Envelope xmlns:s="{SOAP_ENVELOPE_NS}" s:encodingStyle="{SOAP_ENCODING_STYLE}">'
        "<s:Body>"
        f'<u:{action} xmlns:u="{service.urn}">'
        f"{rendered}"
        f"</u:{action}>"
        "</s:Body>"
        "</s:Envelope>"
    )


def build_track_metadata(audio_uri: str, title: str, art_uri: str) -> str:
    """
    Build the DIDL-Lite metadata document shown by the speaker.

    Values are escaped here; the whole document is escaped once more when
    it is embedded as CurrentURIMetaData.
    """
    return (
        "<DIDL-Lite"
        ' xmlns:dc="http://purl.org/dc/elements/1.1/"'
        ' xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/"'
        ' xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/"'
        ' xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
        '<item id="-1" parentID="-1" restricted="true">'
        f'<res protocolInfo="http-get:*:audio/mp4:*">{escape(audio_uri)}</res>'
        "<r:streamContent></r:streamContent>"
        f"<dc:title>{escape(title)}</dc:title>"
        "<upnp:class>object.item.audioItem.musicTrack</upnp:class>"
        "<dc:creator></dc:creator>"
        "<upnp:album></upnp:album>"
        f"<upnp:albumArtURI>{escape(art_uri)}</upnp:albumArtURI>"
        "</item>"
        "</DIDL-Lite>"
    )


def set_av_transport_uri(uri: str, metadata: str) -> SoapRequest:
    return SoapRequest(
        Service.AV_TRANSPORT,
        "SetAVTransportURI",
        build_envelope(
            Service.AV_TRANSPORT,
            "SetAVTransportURI",
            [("CurrentURI", uri), ("CurrentURIMetaData", metadata)],
        ),
    )


def play() -> SoapRequest:
    return SoapRequest(
        Service.AV_TRANSPORT,
        "Play",
        build_envelope(Service.AV_TRANSPORT, "Play", [("Speed", "1")]),
    )


def pause() -> SoapRequest:
    return SoapRequest(
        Service.AV_TRANSPORT,
        "Pause",
        build_envelope(Service.AV_TRANSPORT, "Pause", []),
    )


def stop() -> SoapRequest:
    return SoapRequest(
        Service.AV_TRANSPORT,
        "Stop",
        build_envelope(Service.AV_TRANSPORT, "Stop", []),
    )


def seek(seconds: int) -> SoapRequest:
    """Seek to an absolute position, relative to the start of the track."""
    return SoapRequest(
        Service.AV_TRANSPORT,
        "Seek",
        build_envelope(
            Service.AV_TRANSPORT,
            "Seek",
            [("Unit", "REL_TIME"), ("Target", format_hms(seconds))],
        ),
    )


def get_volume() -> SoapRequest:
    return SoapRequest(
        Service.RENDERING_CONTROL,
        "GetVolume",
        build_envelope(Service.RENDERING_CONTROL, "GetVolume", [("Channel", "Master")]),
    )


def set_volume(volume: int) -> SoapRequest:
    return SoapRequest(
        Service.RENDERING_CONTROL,
        "SetVolume",
        build_envelope(
            Service.RENDERING_CONTROL,
            "SetVolume",
            [("Channel", "Master"), ("DesiredVolume", str(volume))],
        ),
    )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_volume(body: bytes | str) -> int:
    """
    Extract CurrentVolume from a GetVolumeResponse envelope.

    A body that cannot be parsed, or has no integer CurrentVolume, yields 0
    instead of raising. Callers display 0% rather than failing the action.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        logger.warning("Unparseable GetVolume response, reporting 0: %s", e)
        return 0

    for element in root.iter():
        if _local_name(element.tag) == "CurrentVolume":
            try:
                return int((element.text or "").strip())
            except ValueError:
                logger.warning("Non-numeric CurrentVolume %r, reporting 0", element.text)
                return 0

    logger.warning("GetVolume response has no CurrentVolume, reporting 0")
    return 0
