"""Shared microphone stream fanned out to several consumers."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class MicrophoneHub:
    """Opens the input stream on first subscriber, closes it on the last.

    The wake-word watcher and the speech engine each get their own bounded
    queue. A consumer that falls behind loses frames (counted in
    ``dropped_chunks``) instead of stalling the audio callback.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 80,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._lock = threading.Lock()
        self._subscribers: list[Queue[AudioFrame | None]] = []
        self.dropped_chunks = 0

    @property
    def running(self) -> bool:
        return self._stream is not None

    def subscribe(self, maxsize: int = 50) -> Queue[AudioFrame | None]:
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=maxsize)
        with self._lock:
            if self._stream is None:
                self._open_stream()
            self._subscribers.append(audio_queue)
        return audio_queue

    def unsubscribe(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if audio_queue in self._subscribers:
                self._subscribers.remove(audio_queue)
            if not self._subscribers:
                self._close_stream()
        _put_sentinel(audio_queue)

    def close(self) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
            self._close_stream()
        for audio_queue in subscribers:
            _put_sentinel(audio_queue)

    def _open_stream(self) -> None:
        if sd is None:
            raise RuntimeError("sounddevice is not installed")
        blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
        stream = sd.InputStream(
            samplerate=self.sample_rate,
            channels=self.channels,
            dtype="int16",
            blocksize=blocksize,
            callback=self._on_audio,
        )
        stream.start()
        self._stream = stream
        logger.info("Microphone stream opened (%d Hz, %d ms blocks)", self.sample_rate, self.chunk_ms)

    def _close_stream(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._stream = None
        stream.stop()
        stream.close()
        logger.info("Microphone stream closed")

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Audio callback status: %s", status)
        if np is None:
            return
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return
        frame = AudioFrame(
            pcm16_bytes=np.asarray(indata, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        for audio_queue in subscribers:
            try:
                audio_queue.put_nowait(frame)
            except Full:
                self.dropped_chunks += 1


def _put_sentinel(audio_queue: Queue[AudioFrame | None]) -> None:
    try:
        audio_queue.put_nowait(None)
    except Full:
        pass
