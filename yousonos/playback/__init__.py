"""
Playback position tracking for YouSonos.

Components:
    PositionTracker: Local playback clock plus debounced seek coordinator.
    PlaybackState: Snapshot of position and seek bookkeeping.
"""

from yousonos.playback.tracker import ClockState, PlaybackState, PositionTracker

__all__ = [
    "ClockState",
    "PlaybackState",
    "PositionTracker",
]
