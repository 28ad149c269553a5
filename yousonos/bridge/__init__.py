"""
Media bridge for YouSonos.

Speakers are handed short local URLs (`http://<lan-ip>:9372/<handle>.mp4`)
which the bridge server redirects to the real stream URL.

Components:
    BridgeRegistry: Handle to URL table.
    BridgeServer: FastAPI redirect endpoint.
"""

from yousonos.bridge.registry import BridgeRegistry
from yousonos.bridge.server import BridgeServer

__all__ = [
    "BridgeRegistry",
    "BridgeServer",
]
