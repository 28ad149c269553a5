"""
Speaker control for YouSonos.

This package holds the speaker model, the registry of discovered speakers,
and the control session that drives the selected one.
"""

from yousonos.player.registry import TargetRegistry
from yousonos.player.session import ControlError, ControlSession, NoTargetSelectedError
from yousonos.player.target import Target

__all__ = [
    "ControlError",
    "ControlSession",
    "NoTargetSelectedError",
    "Target",
    "TargetRegistry",
]
