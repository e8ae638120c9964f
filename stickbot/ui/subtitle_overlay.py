"""
Subtitle overlay — shows what the stick figure is saying.

Subscribes to PlaybackController signals. While speaking, the subtitle is
echoed to the terminal and, if configured, written to a text file that
streaming software (e.g. an OBS text source) can display. The file is
emptied when the figure stops talking.

Config (in config.yaml):
    ui:
      echo_subtitles: true
      subtitle_file: ""   # e.g. /tmp/stickbot_subtitle.txt
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class SubtitleOverlay:

    def __init__(self, subtitle_file: Optional[str] = None, echo: bool = True):
        self.subtitle_path = Path(subtitle_file) if subtitle_file else None
        self.echo = echo
        self.is_speaking = False
        self.subtitle = ""

    def attach(self, playback) -> None:
        playback.add_listener(self.on_signals)
        self._write_file("")

    def on_signals(self, is_speaking: bool, subtitle: str) -> None:
        self.is_speaking = is_speaking
        self.subtitle = subtitle
        if self.echo and is_speaking and subtitle:
            print(f'  🗨️  "{subtitle}"', flush=True)
        self._write_file(subtitle)

    def _write_file(self, text: str) -> None:
        if self.subtitle_path is None:
            return
        try:
            self.subtitle_path.parent.mkdir(parents=True, exist_ok=True)
            self.subtitle_path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write subtitle file %s: %s", self.subtitle_path, e)


def create_overlay_from_config(config: dict) -> SubtitleOverlay:
    ui_cfg = config.get("ui", {}) or {}
    return SubtitleOverlay(
        subtitle_file=ui_cfg.get("subtitle_file") or None,
        echo=bool(ui_cfg.get("echo_subtitles", True)),
    )
