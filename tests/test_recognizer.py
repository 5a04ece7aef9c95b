"""Tests for DashscopeSpeechEngine."""

from __future__ import annotations

import time
from queue import Queue
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from errors import AUTH_FAILED, ENGINE_ERROR, NETWORK_ERROR, PERMISSION_DENIED, SPEECH_UNAVAILABLE
from models import AudioFrame, EngineErrorKind, RecognitionEvent, RecognitionKind
from recognizer import DashscopeSpeechEngine


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeMicrophone:
    sample_rate = 16000

    def __init__(self) -> None:
        self.queues: list[Queue[AudioFrame | None]] = []
        self.unsubscribed: list[Queue[AudioFrame | None]] = []

    def subscribe(self, maxsize: int = 50) -> Queue[AudioFrame | None]:
        q: Queue[AudioFrame | None] = Queue(maxsize=maxsize)
        self.queues.append(q)
        return q

    def unsubscribe(self, q: Queue[AudioFrame | None]) -> None:
        self.unsubscribed.append(q)
        q.put_nowait(None)


def _make_frame(n_samples: int = 1280) -> AudioFrame:
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples)


def _result(sentence: dict) -> MagicMock:
    result = MagicMock()
    result.get_sentence.return_value = sentence
    return result


def _wait_until(predicate, *, timeout: float = 3.0) -> None:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.02)


def _start(engine: DashscopeSpeechEngine, recognition_cls: MagicMock) -> tuple[list[RecognitionEvent], object]:
    events: list[RecognitionEvent] = []
    engine.start(events.append)
    callback = recognition_cls.call_args.kwargs["callback"]
    return events, callback


# ---------------------------------------------------------------
# Starting a run
# ---------------------------------------------------------------

@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_start_opens_realtime_recognition(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    mic = FakeMicrophone()
    engine = DashscopeSpeechEngine(mic, api_key="test-key")

    _start(engine, mock_recognition)

    assert mock_ds.api_key == "test-key"
    kwargs = mock_recognition.call_args.kwargs
    assert kwargs["model"] == "paraformer-realtime-v2"
    assert kwargs["format"] == "pcm"
    assert kwargs["sample_rate"] == 16000
    mock_recognition.return_value.start.assert_called_once()
    assert engine.running is True
    assert len(mic.queues) == 1

    engine.stop()
    assert engine.running is False


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_start_while_running_is_noop(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    mic = FakeMicrophone()
    engine = DashscopeSpeechEngine(mic, api_key="test-key")

    engine.start(lambda e: None)
    engine.start(lambda e: None)

    assert mock_recognition.call_count == 1
    engine.stop()


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_emits_not_allowed(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone(), api_key="")
    events: list[RecognitionEvent] = []

    engine.start(events.append)

    assert len(events) == 1
    assert events[0].kind == RecognitionKind.ERROR.value
    assert events[0].error_kind == EngineErrorKind.NOT_ALLOWED.value
    assert events[0].code == AUTH_FAILED
    mock_recognition.assert_not_called()


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": "env-key"}, clear=False)
def test_api_key_falls_back_to_environment(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone(), api_key="")

    engine.start(lambda e: None)

    assert mock_ds.api_key == "env-key"
    engine.stop()


def test_missing_sdk_emits_speech_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    import recognizer as rec_mod
    monkeypatch.setattr(rec_mod, "dashscope", None)

    events: list[RecognitionEvent] = []
    DashscopeSpeechEngine(FakeMicrophone(), api_key="k").start(events.append)

    assert [(e.error_kind, e.code) for e in events] == [
        (EngineErrorKind.NOT_ALLOWED.value, SPEECH_UNAVAILABLE)
    ]


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_failed_start_releases_microphone(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    mock_recognition.return_value.start.side_effect = ConnectionError("Connection refused")
    mic = FakeMicrophone()
    engine = DashscopeSpeechEngine(mic, api_key="test-key")
    events: list[RecognitionEvent] = []

    engine.start(events.append)

    assert mic.unsubscribed == mic.queues
    assert events[0].error_kind == EngineErrorKind.OTHER.value
    assert events[0].code == NETWORK_ERROR
    assert engine.running is False


# ---------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------

@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_callbacks_map_to_recognition_events(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone(), api_key="test-key")
    events, callback = _start(engine, mock_recognition)

    callback.on_open()
    callback.on_event(_result({"text": "hel"}))
    callback.on_event(_result({"text": ""}))
    callback.on_event(_result({"text": "hello world", "sentence_end": True}))
    callback.on_event(_result({"text": "again", "end_time": 1200}))
    callback.on_close()

    assert [(e.kind, e.text) for e in events] == [
        (RecognitionKind.STARTED.value, ""),
        (RecognitionKind.PARTIAL.value, "hel"),
        (RecognitionKind.FINAL.value, "hello world"),
        (RecognitionKind.FINAL.value, "again"),
        (RecognitionKind.ENDED.value, ""),
    ]
    engine.stop()


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_callbacks_from_stopped_run_are_dropped(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone(), api_key="test-key")
    events, callback = _start(engine, mock_recognition)

    engine.stop()
    callback.on_event(_result({"text": "late", "sentence_end": True}))
    callback.on_close()

    assert events == []


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_error_callback_maps_auth_failure(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone(), api_key="bad-key")
    events, callback = _start(engine, mock_recognition)

    callback.on_error(SimpleNamespace(status_code=401, message="Invalid API-key provided."))

    assert events[-1].error_kind == EngineErrorKind.NOT_ALLOWED.value
    assert events[-1].code == AUTH_FAILED
    engine.stop()


# ---------------------------------------------------------------
# Audio pump
# ---------------------------------------------------------------

@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_frames_are_forwarded_until_stop(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    mic = FakeMicrophone()
    engine = DashscopeSpeechEngine(mic, api_key="test-key")
    engine.start(lambda e: None)
    recognition = mock_recognition.return_value

    mic.queues[0].put(_make_frame())
    _wait_until(lambda: recognition.send_audio_frame.called)
    recognition.send_audio_frame.assert_called_once_with(b"\x00\x00" * 1280)

    engine.stop()
    _wait_until(lambda: recognition.stop.called)
    recognition.stop.assert_called_once()
    assert mic.unsubscribed == mic.queues


@patch("recognizer.Recognition")
@patch("recognizer.dashscope")
def test_send_failure_emits_error(mock_ds: MagicMock, mock_recognition: MagicMock) -> None:
    mic = FakeMicrophone()
    recognition = mock_recognition.return_value
    recognition.send_audio_frame.side_effect = RuntimeError("websocket closed")
    engine = DashscopeSpeechEngine(mic, api_key="test-key")
    events: list[RecognitionEvent] = []
    engine.start(events.append)

    mic.queues[0].put(_make_frame())
    _wait_until(lambda: bool(events))

    assert events[0].kind == RecognitionKind.ERROR.value
    assert events[0].error_kind == EngineErrorKind.OTHER.value
    assert events[0].code == ENGINE_ERROR
    engine.stop()


# ---------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    "error,kind,code",
    [
        (SimpleNamespace(status_code=403, message="forbidden"), EngineErrorKind.NOT_ALLOWED, AUTH_FAILED),
        (PermissionError("Microphone permission denied"), EngineErrorKind.NOT_ALLOWED, PERMISSION_DENIED),
        (SimpleNamespace(status_code=None, message="No valid audio error"), EngineErrorKind.NO_SPEECH, ENGINE_ERROR),
        (TimeoutError("read timeout"), EngineErrorKind.OTHER, NETWORK_ERROR),
        (RuntimeError("internal server error"), EngineErrorKind.OTHER, ENGINE_ERROR),
    ],
)
def test_error_mapping(error: object, kind: EngineErrorKind, code: str) -> None:
    engine = DashscopeSpeechEngine(FakeMicrophone())

    event = engine._to_error_event(error)

    assert event.kind == RecognitionKind.ERROR.value
    assert event.error_kind == kind.value
    assert event.code == code
