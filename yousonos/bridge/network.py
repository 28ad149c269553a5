"""
Local network address detection for the bridge server.

The URL handed to the speaker must point at an address the speaker can
reach. We pick the first non-loopback IPv4 interface address that sits on a
/24 network (the common home LAN layout), falling back to the routing
table when no such interface exists.
"""

from __future__ import annotations

import ipaddress
import logging
import socket

import ifaddr

logger = logging.getLogger(__name__)

LAN_PREFIX_LENGTH = 24

FALLBACK_ADDRESS = "127.0.0.1"


def find_lan_address(prefix_length: int = LAN_PREFIX_LENGTH) -> str | None:
    """
    Return the first non-loopback IPv4 address with the given prefix length.

    Args:
        prefix_length: Network prefix the address must be advertised with.

    Returns:
        The address as a dotted string, or None if no interface matches.
    """
    for adapter in ifaddr.get_adapters():
        for adapter_ip in adapter.ips:
            # IPv6 entries are (address, flowinfo, scope_id) tuples
            if isinstance(adapter_ip.ip, tuple):
                continue
            try:
                address = ipaddress.IPv4Address(adapter_ip.ip)
            except ValueError:
                continue
            if address.is_loopback:
                continue
            if adapter_ip.network_prefix == prefix_length:
                logger.debug(
                    "Using %s on %s for bridge URLs", address, adapter.nice_name
                )
                return str(address)
    return None


def _route_address(probe_host: str) -> str | None:
    """
    Ask the routing table which local address would reach probe_host.

    Connecting a UDP socket sends nothing; it only selects a route.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect((probe_host, 80))
            local_ip = s.getsockname()[0]
    except OSError as e:
        logger.debug("Could not determine route to %s: %s", probe_host, e)
        return None
    if local_ip and local_ip != "0.0.0.0":
        return local_ip
    return None


def detect_local_address(probe_host: str = "8.8.8.8") -> str:
    """
    Detect the outward-facing local address used to build bridge URLs.

    Args:
        probe_host: Host used for the routing-table fallback. Passing the
            speaker's own IP picks the interface facing the speaker.

    Returns:
        A dotted IPv4 address (loopback only as a last resort).
    """
    address = find_lan_address()
    if address is not None:
        return address

    address = _route_address(probe_host)
    if address is not None:
        logger.info("No /%d interface found, using routed address %s", LAN_PREFIX_LENGTH, address)
        return address

    logger.warning(
        "Could not detect a LAN address, bridge URLs will use %s", FALLBACK_ADDRESS
    )
    return FALLBACK_ADDRESS
