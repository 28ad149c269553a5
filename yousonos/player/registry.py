"""
Target Registry - the selectable list of discovered speakers.

The discovery loop does not deduplicate; a speaker answering twice, or
answering on several interfaces, shows up more than once. The registry keys
speakers by network authority (host:port) so each appears once, and lets the
caller look them up by the display name it shows to the user.
"""

import asyncio
import logging
from typing import Iterable

from yousonos.player.target import Target

logger = logging.getLogger(__name__)


class TargetRegistry:
    """
    Registry of discovered speakers, deduplicated by network authority.

    Thread-safety: This class uses an asyncio lock for safe concurrent
    access from multiple coroutines.
    """

    def __init__(self) -> None:
        """Initialize an empty target registry."""
        self._targets_by_authority: dict[str, Target] = {}
        self._lock = asyncio.Lock()

    async def add(self, target: Target) -> bool:
        """
        Add a speaker to the registry.

        The first Target seen for an authority wins; later duplicates are
        ignored so the list shown to the user stays stable.

        Returns:
            True if the target was new.
        """
        async with self._lock:
            authority = target.authority
            if authority in self._targets_by_authority:
                logger.debug("Ignoring duplicate target %s at %s", target.name, authority)
                return False

            self._targets_by_authority[authority] = target
            logger.info("Target registered: %s (%s)", target.name, authority)
            return True

    async def replace_all(self, targets: Iterable[Target]) -> int:
        """
        Replace the registry contents with a fresh discovery result.

        Returns:
            Number of distinct targets kept.
        """
        async with self._lock:
            self._targets_by_authority.clear()
            for target in targets:
                self._targets_by_authority.setdefault(target.authority, target)
            count = len(self._targets_by_authority)
        logger.info("Target list refreshed (%d speakers)", count)
        return count

    async def get_by_name(self, name: str) -> Target | None:
        """
        Look up a speaker by its display name.

        Args:
            name: Display name (exact match first, then case-insensitive).

        Returns:
            The first matching target, or None if not found.
        """
        async with self._lock:
            for target in self._targets_by_authority.values():
                if target.name == name:
                    return target
            name_lower = name.lower()
            for target in self._targets_by_authority.values():
                if target.name.lower() == name_lower:
                    return target
            return None

    async def get_by_authority(self, authority: str) -> Target | None:
        """Look up a speaker by host:port."""
        async with self._lock:
            return self._targets_by_authority.get(authority)

    async def get_all(self) -> list[Target]:
        """
        Get all speakers in first-discovered order.

        Returns:
            A list copy, safe to iterate.
        """
        async with self._lock:
            return list(self._targets_by_authority.values())

    async def names(self) -> list[str]:
        """Display names of all speakers, sorted for presentation."""
        async with self._lock:
            return sorted(t.name for t in self._targets_by_authority.values())

    def __len__(self) -> int:
        """Return the number of known speakers."""
        return len(self._targets_by_authority)

    def __contains__(self, authority: str) -> bool:
        """Check if a speaker with the given authority is known."""
        return authority in self._targets_by_authority
