"""
YouSonos - play YouTube audio on a Sonos (UPnP/AV) speaker.

YouSonos discovers speakers on the local network, controls them over the
UPnP AVTransport/RenderingControl SOAP services, and bridges resolved
stream URLs through a small local redirect server so the speaker can
fetch audio it could not reach directly.
"""

__version__ = "0.1.0"
__author__ = "YouSonos Contributors"
__license__ = "Apache-2.0"

from yousonos.app import YouSonosApp

__all__ = ["YouSonosApp", "__version__"]
