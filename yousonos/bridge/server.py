"""
Bridge Server Module for YouSonos.

A tiny FastAPI application that turns `GET /{handle}.mp4` into a 302
redirect to the URL stored in the BridgeRegistry. Speakers only see a short
local URL; the redirect hands them the real stream.

Malformed or unknown handles are dropped silently: the client gets an empty
200 response and no Location header, never an error page.
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn
from fastapi import FastAPI, Response
from fastapi.responses import RedirectResponse

from yousonos.bridge.network import detect_local_address
from yousonos.bridge.registry import BridgeRegistry

logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_PORT = 9372


def parse_handle(raw: str) -> int | None:
    """
    Parse a path segment into a bridge handle.

    Only plain ASCII digit strings are handles; signs, spaces and digit
    separators that int() would accept are rejected.

    Returns:
        The integer handle, or None if the segment is not a plain integer.
    """
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


class BridgeServer:
    """
    FastAPI-based redirect server for bridge handles.

    The server binds a fixed port so URLs already handed to a speaker stay
    valid for the life of the process.
    """

    def __init__(
        self,
        registry: BridgeRegistry,
        host: str = "0.0.0.0",
        port: int = DEFAULT_BRIDGE_PORT,
        advertise_address: str | None = None,
    ) -> None:
        """
        Initialize the BridgeServer.

        Args:
            registry: Handle table to resolve requests against.
            host: Host address to bind to.
            port: Port to listen on.
            advertise_address: Address to put in bridge URLs. Detected from
                the network interfaces when omitted.
        """
        self.registry = registry
        self._host = host
        self._port = port
        self._advertise_address = advertise_address
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

        self.app = FastAPI(
            title="YouSonos Bridge",
            description="Redirects bridge handles to playable media URLs",
            version="0.1.0",
        )
        self._register_routes()

    def _register_routes(self) -> None:
        """Register the redirect route with the FastAPI app."""

        @self.app.get("/{handle}.mp4")
        async def redirect_handle(handle: str) -> Response:
            """Redirect a bridge handle to its media URL."""
            parsed = parse_handle(handle)
            if parsed is None:
                logger.debug("Dropping bridge request with malformed handle %r", handle)
                return Response()

            url = await self.registry.resolve(parsed)
            if url is None:
                logger.debug("Dropping bridge request for unknown handle %d", parsed)
                return Response()

            logger.debug("Redirecting bridge handle %d", parsed)
            return RedirectResponse(url, status_code=302)

    async def start(self) -> None:
        """Start serving in a background task."""
        if self._server is not None:
            logger.warning("Bridge server already running")
            return

        if self._advertise_address is None:
            self._advertise_address = detect_local_address()

        config = uvicorn.Config(
            self.app,
            host=self._host,
            port=self._port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info(
            "Bridge server started on %s:%d (advertising %s)",
            self._host,
            self._port,
            self._advertise_address,
        )

    async def stop(self) -> None:
        """Stop the server and wait for it to shut down."""
        if self._server is None:
            return

        self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
        self._server = None
        self._serve_task = None

        logger.info("Bridge server stopped")

    def url_for(self, handle: int) -> str:
        """
        Compose the speaker-reachable URL for a handle.

        Returns:
            `http://{address}:{port}/{handle}.mp4`
        """
        if self._advertise_address is None:
            self._advertise_address = detect_local_address()
        return f"http://{self._advertise_address}:{self._port}/{handle}.mp4"

    async def publish(self, url: str) -> str:
        """
        Register a media URL and return the bridge URL that redirects to it.
        """
        handle = await self.registry.register(url)
        return self.url_for(handle)

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the bind host."""
        return self._host

    @property
    def is_running(self) -> bool:
        """Check if the server is serving."""
        return self._server is not None
