"""
Target model - one controllable speaker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlsplit


@dataclass(frozen=True, slots=True)
class Target:
    """
    A speaker reachable over the UPnP control protocol.

    Targets are immutable and compared by control_base_url only, so the same
    speaker discovered twice under different display names is one Target.
    """

    name: str = field(compare=False)
    control_base_url: str

    @classmethod
    def from_location(cls, name: str, location: str) -> Target:
        """
        Build a Target from a device description URL.

        The control base URL keeps only the scheme-less network authority of
        the description URL, e.g. http://192.168.1.20:1400/xml/... becomes
        http://192.168.1.20:1400.

        Raises:
            ValueError: If the location has no network authority.
        """
        authority = urlsplit(location).netloc
        if not authority:
            raise ValueError(f"Description URL has no host: {location!r}")
        return cls(name=name, control_base_url=f"http://{authority}")

    @property
    def authority(self) -> str:
        """host:port part of the control base URL."""
        return urlsplit(self.control_base_url).netloc

    @property
    def host(self) -> str:
        """Host part of the control base URL."""
        return urlsplit(self.control_base_url).hostname or ""

    def control_url(self, path: str) -> str:
        """Absolute URL for a control path on this speaker."""
        return f"{self.control_base_url}{path}"
