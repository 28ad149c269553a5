"""
Bridge Registry - handle to media URL table.

The speaker cannot always fetch a resolved stream URL itself (redirect
chains, long signed query strings). Instead it is handed a short local URL
containing an integer handle, and the bridge server redirects that handle
to the real URL kept here.

Handles are allocated monotonically (next = size + 1) and entries are never
removed for the lifetime of the process, so a handle always resolves to the
URL it was issued for even after later tracks are registered.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class BridgeRegistry:
    """
    In-memory table from integer handle to playable URL.

    Thread-safety: allocation and lookup share one asyncio lock, so two
    rapid "play new track" actions never receive the same handle.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._urls: dict[int, str] = {}
        self._lock = asyncio.Lock()

    async def register(self, url: str) -> int:
        """
        Store a URL and return its new handle.

        Args:
            url: The playable media URL to bridge.

        Returns:
            A positive integer handle, unique for this process.
        """
        async with self._lock:
            handle = len(self._urls) + 1
            self._urls[handle] = url
            logger.debug("Registered bridge handle %d (%d total)", handle, handle)
            return handle

    async def resolve(self, handle: int) -> str | None:
        """
        Look up the URL for a handle.

        Returns:
            The URL stored at registration time, or None if unknown.
        """
        async with self._lock:
            return self._urls.get(handle)

    def __len__(self) -> int:
        """Return the number of issued handles."""
        return len(self._urls)
