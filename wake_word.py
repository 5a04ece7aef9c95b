"""Always-on wake word watcher based on openwakeword."""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Queue
from typing import Any, Callable, Optional

from models import AudioFrame
from recorder import MicrophoneHub

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    from openwakeword.model import Model as WakeWordModel
except Exception:  # pragma: no cover
    WakeWordModel = None  # type: ignore

logger = logging.getLogger(__name__)


class OpenWakeWordWatcher:
    def __init__(
        self,
        microphone: MicrophoneHub,
        model: str = "hey_jarvis",
        threshold: float = 0.5,
        refractory_s: float = 2.0,
        inference_framework: str = "onnx",
    ) -> None:
        self._microphone = microphone
        self._model_name = model
        self._threshold = threshold
        self._refractory_s = refractory_s
        self._inference_framework = inference_framework
        self._model: Any = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._on_detect: Optional[Callable[[int], None]] = None
        self._last_detection = float("-inf")

    def start(self, on_detect: Callable[[int], None]) -> None:
        if self._thread and self._thread.is_alive():
            return
        if WakeWordModel is None or np is None:
            raise RuntimeError("openwakeword is not installed")
        if self._model is None:
            try:
                self._model = WakeWordModel(
                    wakeword_models=[self._model_name],
                    inference_framework=self._inference_framework,
                )
            except Exception as exc:
                raise RuntimeError(
                    f"failed to load wake word model {self._model_name!r}: {exc}"
                ) from exc
        self._audio_queue = self._microphone.subscribe()
        self._on_detect = on_detect
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()
        logger.info("Watching for wake word with model %s", self._model_name)

    def stop(self) -> None:
        self._stop_event.set()
        if self._audio_queue is not None:
            self._microphone.unsubscribe(self._audio_queue)
            self._audio_queue = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self) -> None:
        audio_queue = self._audio_queue
        if audio_queue is None or self._on_detect is None:
            return
        while not self._stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            keyword_index = self._process(frame)
            if keyword_index is not None:
                self._on_detect(keyword_index)

    def _process(self, frame: AudioFrame) -> Optional[int]:
        """Feed one frame; returns the keyword index on a detection."""
        samples = np.frombuffer(frame.pcm16_bytes, dtype=np.int16)
        try:
            scores = self._model.predict(samples)
        except Exception:
            logger.exception("Wake word inference failed")
            return None
        if not scores:
            return None
        names = list(scores)
        best = max(range(len(names)), key=lambda i: scores[names[i]])
        score = float(scores[names[best]])
        if score < self._threshold:
            return None
        now = time.monotonic()
        if now - self._last_detection < self._refractory_s:
            return None
        self._last_detection = now
        logger.info("Wake word %s scored %.2f", names[best], score)
        self._model.reset()
        return best
