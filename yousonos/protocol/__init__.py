"""
Protocol implementations for YouSonos.

This package contains the network protocol code:
- discovery: SSDP M-SEARCH discovery of speakers
- soap: UPnP SOAP envelopes for AVTransport/RenderingControl
"""

from yousonos.protocol.discovery import DiscoveryClient, DiscoveryError

__all__ = ["DiscoveryClient", "DiscoveryError"]
