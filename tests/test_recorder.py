"""Tests for MicrophoneHub."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from models import AudioFrame
from recorder import MicrophoneHub


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class _FakeNp:
    """Minimal numpy stand-in so MicrophoneHub._on_audio doesn't bail."""

    class int16:
        pass

    @staticmethod
    def asarray(data, dtype=None):
        return data


class _FakeAudioInput:
    """Fake audio input similar to what sounddevice callback provides."""

    def __init__(self, n_samples: int = 1280) -> None:
        self._data = b"\x00\x00" * n_samples

    def tobytes(self) -> bytes:
        return self._data


# ---------------------------------------------------------------
# Stream lifetime follows subscribers
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_first_subscriber_opens_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    hub = MicrophoneHub(sample_rate=16000, chunk_ms=80)
    hub.subscribe()

    mock_sd.InputStream.assert_called_once()
    kwargs = mock_sd.InputStream.call_args.kwargs
    assert kwargs["samplerate"] == 16000
    assert kwargs["dtype"] == "int16"
    assert kwargs["blocksize"] == 1280
    mock_stream.start.assert_called_once()
    assert hub.running is True


@patch("recorder.sd")
def test_second_subscriber_shares_stream(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    hub = MicrophoneHub()
    hub.subscribe()
    hub.subscribe()

    assert mock_sd.InputStream.call_count == 1


@patch("recorder.sd")
def test_last_unsubscribe_closes_stream(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    hub = MicrophoneHub()
    first = hub.subscribe()
    second = hub.subscribe()

    hub.unsubscribe(first)
    mock_stream.stop.assert_not_called()
    assert first.get_nowait() is None

    hub.unsubscribe(second)
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert second.get_nowait() is None
    assert hub.running is False


@patch("recorder.sd")
def test_close_releases_everyone(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    hub = MicrophoneHub()
    queues = [hub.subscribe(), hub.subscribe()]
    hub.close()
    hub.close()

    mock_stream.close.assert_called_once()
    assert [q.get_nowait() for q in queues] == [None, None]


# ---------------------------------------------------------------
# Audio callback fans frames out
# ---------------------------------------------------------------

@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_callback_fans_out_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    hub = MicrophoneHub(sample_rate=16000, channels=1)
    wake_queue = hub.subscribe()
    speech_queue = hub.subscribe()

    hub._on_audio(_FakeAudioInput(1280), frames=1280, time_info=None, status=None)

    for q in (wake_queue, speech_queue):
        frame = q.get_nowait()
        assert isinstance(frame, AudioFrame)
        assert frame.sample_rate == 16000
        assert frame.channels == 1
        assert len(frame.pcm16_bytes) == 1280 * 2


@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_slow_consumer_drops_frames_without_blocking_others(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    hub = MicrophoneHub()
    slow = hub.subscribe(maxsize=1)
    fast = hub.subscribe(maxsize=10)
    data = _FakeAudioInput()

    hub._on_audio(data, frames=1280, time_info=None, status=None)
    assert hub.dropped_chunks == 0
    hub._on_audio(data, frames=1280, time_info=None, status=None)

    assert hub.dropped_chunks == 1
    assert slow.qsize() == 1
    assert fast.qsize() == 2


@patch("recorder.np", _FakeNp())
@patch("recorder.sd")
def test_callback_after_unsubscribe_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    hub = MicrophoneHub()
    q = hub.subscribe()
    hub.unsubscribe(q)
    assert q.get_nowait() is None

    hub._on_audio(_FakeAudioInput(), frames=1280, time_info=None, status=None)
    assert q.empty()


# ---------------------------------------------------------------
# No sounddevice installed
# ---------------------------------------------------------------

def test_subscribe_raises_without_sounddevice(monkeypatch: pytest.MonkeyPatch) -> None:
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    hub = MicrophoneHub()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        hub.subscribe()
    assert hub.running is False
