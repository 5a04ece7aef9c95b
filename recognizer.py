"""Continuous speech engine using DashScope realtime recognition.

Microphone frames are pumped from the shared ``MicrophoneHub`` into a
``dashscope.audio.asr.Recognition`` session. Recognition callbacks arrive on
SDK threads and are forwarded as ``RecognitionEvent``s. Every run is stamped
with a generation number so that callbacks belonging to a stopped run are
dropped.
"""

from __future__ import annotations

import logging
import os
import threading
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import AUTH_FAILED, ENGINE_ERROR, NETWORK_ERROR, PERMISSION_DENIED, SPEECH_UNAVAILABLE
from models import AudioFrame, EngineErrorKind, RecognitionEvent, RecognitionKind
from recorder import MicrophoneHub

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore

logger = logging.getLogger(__name__)


class _EngineCallback(RecognitionCallback):
    def __init__(self, engine: "DashscopeSpeechEngine", generation: int) -> None:
        self._engine = engine
        self._generation = generation

    def on_open(self) -> None:
        self._engine._emit(self._generation, RecognitionEvent(kind=RecognitionKind.STARTED.value))

    def on_event(self, result: Any) -> None:
        event = self._engine._to_fragment_event(result)
        if event is not None:
            self._engine._emit(self._generation, event)

    def on_error(self, result: Any) -> None:
        self._engine._emit(self._generation, self._engine._to_error_event(result))

    def on_complete(self) -> None:
        logger.debug("Recognition run %d complete", self._generation)

    def on_close(self) -> None:
        self._engine._emit(self._generation, RecognitionEvent(kind=RecognitionKind.ENDED.value))


class DashscopeSpeechEngine:
    def __init__(
        self,
        microphone: MicrophoneHub,
        api_key: str = "",
        model: str = "paraformer-realtime-v2",
    ) -> None:
        self._microphone = microphone
        self._api_key = api_key
        self._model = model
        self._lock = threading.Lock()
        self._generation = 0
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None
        self._recognition: Any = None
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._recognition is not None

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None:
        if self._recognition is not None:
            return
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._on_event = on_event

        if dashscope is None or Recognition is None:
            self._emit_error(generation, EngineErrorKind.NOT_ALLOWED, SPEECH_UNAVAILABLE, "dashscope is not installed")
            return
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit_error(generation, EngineErrorKind.NOT_ALLOWED, AUTH_FAILED, "No API key configured")
            return
        dashscope.api_key = api_key

        try:
            audio_queue = self._microphone.subscribe()
        except Exception as exc:
            self._emit(generation, self._to_error_event(exc))
            return

        recognition = Recognition(
            model=self._model,
            format="pcm",
            sample_rate=self._microphone.sample_rate,
            callback=_EngineCallback(self, generation),
        )
        try:
            recognition.start()
        except Exception as exc:
            self._microphone.unsubscribe(audio_queue)
            self._emit(generation, self._to_error_event(exc))
            return

        stop_event = threading.Event()
        self._recognition = recognition
        self._audio_queue = audio_queue
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._pump,
            args=(generation, recognition, audio_queue, stop_event),
            daemon=True,
        )
        self._thread.start()
        logger.info("Speech recognition run %d started with %s", generation, self._model)

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
        if self._stop_event is not None:
            self._stop_event.set()
        if self._audio_queue is not None:
            self._microphone.unsubscribe(self._audio_queue)
        thread = self._thread
        self._recognition = None
        self._audio_queue = None
        self._stop_event = None
        self._thread = None
        if thread and thread.is_alive():
            thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _pump(
        self,
        generation: int,
        recognition: Any,
        audio_queue: Queue[AudioFrame | None],
        stop_event: threading.Event,
    ) -> None:
        """Feed microphone frames to the recognition run until stopped."""
        while not stop_event.is_set():
            try:
                frame = audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                break
            try:
                recognition.send_audio_frame(frame.pcm16_bytes)
            except Exception as exc:
                self._emit(generation, self._to_error_event(exc))
                break
        try:
            recognition.stop()
        except Exception:
            logger.debug("Recognition run %d did not stop cleanly", generation, exc_info=True)
        if self._recognition is recognition:
            self._recognition = None

    def _emit(self, generation: int, event: RecognitionEvent) -> None:
        with self._lock:
            if generation != self._generation:
                return
            callback = self._on_event
        if callback is not None:
            callback(event)

    def _emit_error(self, generation: int, kind: EngineErrorKind, code: str, message: str) -> None:
        self._emit(
            generation,
            RecognitionEvent(
                kind=RecognitionKind.ERROR.value,
                error_kind=kind.value,
                code=code,
                message=message,
            ),
        )

    def _to_fragment_event(self, result: Any) -> Optional[RecognitionEvent]:
        """Pull the sentence text out of a realtime recognition result."""
        getter = getattr(result, "get_sentence", None)
        sentence = getter() if callable(getter) else result
        if not isinstance(sentence, dict):
            return None
        text = str(sentence.get("text", ""))
        if _is_sentence_end(sentence):
            return RecognitionEvent(kind=RecognitionKind.FINAL.value, text=text)
        if not text:
            return None
        return RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text=text)

    def _to_error_event(self, error: Any) -> RecognitionEvent:
        """Map an SDK error result or exception to a standard error event."""
        message = str(getattr(error, "message", "") or error)
        status = str(getattr(error, "status_code", "") or "")
        low = f"{status} {message}".lower()
        if "401" in low or "403" in low or "auth" in low or "api key" in low or "apikey" in low:
            kind, code = EngineErrorKind.NOT_ALLOWED, AUTH_FAILED
        elif "permission" in low or "denied" in low or "not allowed" in low:
            kind, code = EngineErrorKind.NOT_ALLOWED, PERMISSION_DENIED
        elif "no speech" in low or "no valid audio" in low:
            kind, code = EngineErrorKind.NO_SPEECH, ENGINE_ERROR
        elif "timeout" in low or "network" in low or "connection" in low:
            kind, code = EngineErrorKind.OTHER, NETWORK_ERROR
        else:
            kind, code = EngineErrorKind.OTHER, ENGINE_ERROR
        return RecognitionEvent(
            kind=RecognitionKind.ERROR.value,
            error_kind=kind.value,
            code=code,
            message=message,
        )


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None
