"""
Audio output sinks for synthesized speech.

PyAudioOutput owns the speaker device: it is opened once (after the user's
start gesture) and kept for the life of the process. play() writes the WAV's
PCM through a blocking PyAudio stream in the default executor and returns
when the audio has been written out, which is the playback-complete signal.

Cancelling play() does not stop the executor thread, so shutdown goes
through aclose(): it asks the writer to stop between chunks, waits for the
write to return, and only then terminates PortAudio.

NullAudioOutput plays nothing and just waits for the WAV's duration, for
headless runs and tests.

Config (in config.yaml):
    audio:
      backend: pyaudio   # or "null"
      volume: 1.0        # linear gain applied to the PCM
      device_index: null # output device, default device if null
      close_timeout_s: 2.0 # how long shutdown waits for an in-flight write
"""

from __future__ import annotations

import asyncio
import logging
import struct
import time
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class WavInfo:
    sample_rate: int
    channels: int
    sample_width: int
    pcm: bytes

    @property
    def duration_s(self) -> float:
        frame_size = self.channels * self.sample_width
        if self.sample_rate <= 0 or frame_size <= 0:
            return 0.0
        return len(self.pcm) / float(self.sample_rate * frame_size)


def parse_wav(wav_bytes: bytes) -> WavInfo | None:
    """
    Parse a PCM WAV byte string into format + raw PCM.

    OpenAI's TTS WAV output uses placeholder chunk sizes (0xFFFFFFFF), which
    the `wave` module takes at face value. We walk the chunks ourselves and
    fall back to the actual byte length for the data chunk.
    """
    if len(wav_bytes) < 44:
        return None
    if wav_bytes[0:4] != b"RIFF" or wav_bytes[8:12] != b"WAVE":
        return None

    pos = 12
    fmt: tuple[int, int, int] | None = None
    data_offset: int | None = None
    data_size: int | None = None

    while pos + 8 <= len(wav_bytes):
        chunk_id = wav_bytes[pos : pos + 4]
        chunk_size = struct.unpack_from("<I", wav_bytes, pos + 4)[0]
        pos += 8

        if chunk_id == b"fmt " and chunk_size >= 16 and pos + 16 <= len(wav_bytes):
            _audio_fmt, channels, sr, _byte_rate, _balign, bits = struct.unpack_from(
                "<HHIIHH", wav_bytes, pos
            )
            fmt = (int(sr), int(channels), int(bits) // 8)

        if chunk_id == b"data":
            data_offset = pos
            data_size = int(chunk_size)
            break

        pos += chunk_size
        # Chunks are word-aligned.
        if chunk_size % 2 == 1:
            pos += 1

    if fmt is None or data_offset is None:
        return None
    sample_rate, channels, sample_width = fmt
    if sample_rate <= 0 or channels <= 0 or sample_width <= 0:
        return None

    if data_size is None or data_size == 0xFFFFFFFF or data_offset + data_size > len(wav_bytes):
        data_size = len(wav_bytes) - data_offset

    return WavInfo(
        sample_rate=sample_rate,
        channels=channels,
        sample_width=sample_width,
        pcm=wav_bytes[data_offset : data_offset + data_size],
    )


def wav_duration_seconds(wav_bytes: bytes) -> float | None:
    info = parse_wav(wav_bytes)
    if info is None:
        return None
    return info.duration_s


def _apply_gain(pcm: bytes, gain: float) -> bytes:
    """Scale 16-bit PCM by a linear gain, clipping to range.

    A trailing odd byte (half a sample) is passed through untouched.
    """
    if gain == 1.0 or not pcm:
        return pcm
    tail = pcm[len(pcm) - len(pcm) % 2 :]
    samples = np.frombuffer(pcm[: len(pcm) - len(tail)], dtype=np.int16).astype(np.float32)
    samples = np.clip(samples * gain, -32768, 32767)
    return samples.astype(np.int16).tobytes() + tail


class PyAudioOutput:
    """Blocking PyAudio playback wrapped for asyncio."""

    # ~43ms at 24kHz; bounds how long aclose() waits for the writer to notice.
    WRITE_CHUNK_FRAMES = 1024

    def __init__(
        self,
        volume: float = 1.0,
        device_index: Optional[int] = None,
        close_timeout_s: float = 2.0,
    ):
        self.volume = float(volume)
        self.device_index = device_index
        self.close_timeout_s = float(close_timeout_s)
        self._audio: Any = None
        self._closing = False
        self._write_future: Optional[asyncio.Future] = None

    @property
    def is_open(self) -> bool:
        return self._audio is not None

    @property
    def is_writing(self) -> bool:
        return self._write_future is not None and not self._write_future.done()

    def open(self) -> None:
        """Acquire the audio device. Safe to call more than once."""
        if self._audio is not None:
            return
        import pyaudio

        self._audio = pyaudio.PyAudio()
        self._closing = False
        logger.info("Audio output opened (device_index=%s)", self.device_index)

    async def play(self, wav_bytes: bytes) -> None:
        """Play a WAV and return once it has finished."""
        if self._audio is None or self._closing:
            raise RuntimeError("Audio output is not open (call open() after the start gesture)")

        info = parse_wav(wav_bytes)
        if info is None:
            raise RuntimeError("Cannot play audio: not a PCM WAV")

        pcm = info.pcm
        if info.sample_width == 2:
            pcm = _apply_gain(pcm, self.volume)

        audio = self._audio
        step = self.WRITE_CHUNK_FRAMES * info.channels * info.sample_width

        def _write() -> None:
            stream = audio.open(
                format=audio.get_format_from_width(info.sample_width),
                channels=info.channels,
                rate=info.sample_rate,
                output=True,
                output_device_index=self.device_index,
            )
            try:
                for start in range(0, len(pcm), step):
                    if self._closing:
                        logger.debug("Audio output closing; playback cut short")
                        break
                    stream.write(pcm[start : start + step])
            finally:
                stream.stop_stream()
                stream.close()

        loop = asyncio.get_event_loop()
        t0 = time.monotonic()
        self._write_future = loop.run_in_executor(None, _write)
        # Shielded so a cancelled play() leaves the future for aclose() to wait on.
        await asyncio.shield(self._write_future)
        logger.debug("Played %.2fs of audio in %.2fs", info.duration_s, time.monotonic() - t0)

    async def aclose(self) -> None:
        """Stop any in-flight write, wait for it to return, then release the device."""
        if self._audio is None:
            return
        self._closing = True
        future = self._write_future
        if future is not None and not future.done():
            try:
                await asyncio.wait_for(asyncio.shield(future), timeout=self.close_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "Audio write still running after %.1fs; leaving PortAudio open",
                    self.close_timeout_s,
                )
                return
            except Exception:
                logger.debug("In-flight audio write failed during close", exc_info=True)
        self.close()

    def close(self) -> None:
        if self._audio is None:
            return
        if self.is_writing:
            self._closing = True
            logger.warning("Audio write in progress; not terminating PortAudio (use aclose())")
            return
        self._audio.terminate()
        self._audio = None
        self._write_future = None
        logger.info("Audio output closed")


class NullAudioOutput:
    """Silent sink that takes as long as the audio would."""

    def __init__(self, fallback_duration_s: float = 1.0):
        self.fallback_duration_s = fallback_duration_s
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True

    async def play(self, wav_bytes: bytes) -> None:
        duration_s = wav_duration_seconds(wav_bytes)
        if duration_s is None:
            duration_s = self.fallback_duration_s
        await asyncio.sleep(duration_s)

    async def aclose(self) -> None:
        self.close()

    def close(self) -> None:
        self._open = False


def create_audio_output_from_config(config: dict):
    audio_cfg = config.get("audio", {}) or {}
    backend = audio_cfg.get("backend", "pyaudio")
    if backend == "pyaudio":
        return PyAudioOutput(
            volume=float(audio_cfg.get("volume", 1.0)),
            device_index=audio_cfg.get("device_index"),
            close_timeout_s=float(audio_cfg.get("close_timeout_s", 2.0)),
        )
    if backend == "null":
        return NullAudioOutput()
    raise RuntimeError(
        f"Unsupported audio backend={backend!r} (supported: 'pyaudio', 'null')"
    )
