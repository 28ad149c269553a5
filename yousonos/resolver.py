"""
Metadata resolver: YouTube URL to playable stream.

The speaker cannot play a YouTube page, so each input URL is resolved
through an Invidious instance into a direct MP4 stream, a title, a
thumbnail, and a duration. Stream URLs are rewritten onto the Invidious
host so the audio is proxied by the instance rather than fetched from
Google's CDN with a foreign signature.

Resolution either fully succeeds or raises ResolveError; callers change no
state until a TrackInfo is in hand.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlsplit

import httpx

from yousonos.core import YouSonosError

logger = logging.getLogger(__name__)

DEFAULT_INVIDIOUS_BASE_URL = "https://invidious.namazso.eu"

USER_AGENT = "YouSonos"

# Format stream picked for playback; the speaker decodes AAC in MP4
PREFERRED_RESOLUTION = "360p"
PREFERRED_CONTAINER = "mp4"

YOUTUBE_URL_RE = re.compile(
    r"^(?:https?:)?(?://)?"
    r"(?:youtu\.be/|(?:www\.|m\.)?youtube\.com/(?:watch|v|embed)(?:\.php)?(?:\?.*v=|/))"
    r"([a-zA-Z0-9_-]{7,15})"
    r"(?:[?&][a-zA-Z0-9_-]+=[a-zA-Z0-9_-]+)*$"
)


class ResolveError(YouSonosError):
    """Raised when an input URL cannot be resolved into a playable track."""


@dataclass(frozen=True, slots=True)
class TrackInfo:
    """A resolved, playable track."""

    title: str
    stream_url: str
    thumbnail_url: str
    duration_seconds: int
    video_id: str


class Resolver(Protocol):
    """Anything that turns an input URL into a TrackInfo."""

    async def resolve(self, url: str) -> TrackInfo: ...


def extract_video_id(url: str) -> str:
    """
    Validate a YouTube URL and return its video id.

    Raises:
        ResolveError: If the URL is not a recognized YouTube URL.
    """
    match = YOUTUBE_URL_RE.match(url.strip())
    if match is None:
        raise ResolveError("url is not a YouTube url")
    return match.group(1)


def thumbnail_url_for(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg"


def select_stream(format_streams: list[dict[str, Any]]) -> str | None:
    """Pick the preferred progressive stream URL, or None if absent."""
    for stream in format_streams:
        if (
            stream.get("resolution") == PREFERRED_RESOLUTION
            and stream.get("container") == PREFERRED_CONTAINER
        ):
            return stream.get("url") or None
    return None


def rewrite_onto_base(stream_url: str, base_url: str) -> str:
    """
    Move a stream URL onto the Invidious base, keeping path and query.

    https://rr1.googlevideo.com/videoplayback?x=1 with base
    https://inv.example becomes https://inv.example/videoplayback?x=1.
    """
    parts = urlsplit(stream_url)
    rest = parts.path.lstrip("/")
    if parts.query:
        rest = f"{rest}?{parts.query}"
    return f"{base_url.rstrip('/')}/{rest}"


class InvidiousResolver:
    """
    Resolves YouTube URLs through the Invidious video API.

    Usage:
        async with httpx.AsyncClient() as http:
            resolver = InvidiousResolver(http)
            track = await resolver.resolve("https://youtu.be/dQw4w9WgXcQ")
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_INVIDIOUS_BASE_URL,
    ) -> None:
        self._http = http_client
        self.base_url = base_url.rstrip("/")

    async def resolve(self, url: str) -> TrackInfo:
        """
        Resolve a YouTube URL.

        Raises:
            ResolveError: Unrecognized URL, lookup failure, or no usable stream.
        """
        video_id = extract_video_id(url)
        api_url = f"{self.base_url}/api/v1/videos/{video_id}"

        logger.debug("Resolving video %s via %s", video_id, self.base_url)

        try:
            response = await self._http.get(api_url, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ResolveError(f"Lookup failed for {video_id}: {e}") from e
        except ValueError as e:
            raise ResolveError(f"Invalid lookup response for {video_id}: {e}") from e

        if not isinstance(data, dict):
            raise ResolveError(f"Invalid lookup response for {video_id}")

        stream = select_stream(data.get("formatStreams") or [])
        if stream is None:
            raise ResolveError(
                f"No {PREFERRED_RESOLUTION} {PREFERRED_CONTAINER} stream for {video_id}"
            )

        try:
            duration = int(data.get("lengthSeconds") or 0)
        except (TypeError, ValueError):
            duration = 0

        track = TrackInfo(
            title=str(data.get("title") or video_id),
            stream_url=rewrite_onto_base(stream, self.base_url),
            thumbnail_url=thumbnail_url_for(video_id),
            duration_seconds=duration,
            video_id=video_id,
        )
        logger.info("Resolved %s: %s (%ds)", video_id, track.title, track.duration_seconds)
        return track
