"""
Core domain package.

Shared building blocks that are independent of any caller (CLI, GUI):
the base exception type and the event bus used to report state changes.

Consumers should usually import from the specific module they need
(e.g. `yousonos.core.events`).
"""

from __future__ import annotations

__all__: list[str] = [
    "YouSonosError",
]


class YouSonosError(Exception):
    """Base class for all YouSonos exceptions."""
