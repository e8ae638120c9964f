"""UI surfaces driven by the playback signals."""

from stickbot.ui.subtitle_overlay import SubtitleOverlay

__all__ = ["SubtitleOverlay"]
