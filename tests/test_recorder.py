"""Tests for SoundDeviceRecorder."""

from __future__ import annotations

from queue import Queue
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from models import AudioFrame
from recorder import SoundDeviceRecorder, rms_level


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _block(value: int = 0, n_samples: int = 1600) -> np.ndarray:
    """Int16 block shaped like a sounddevice callback buffer."""
    return np.full((n_samples, 1), value, dtype=np.int16)


# ---------------------------------------------------------------
# Loudness
# ---------------------------------------------------------------

def test_rms_level() -> None:
    assert rms_level(_block(0)) == 0.0
    assert rms_level(_block(1000)) == pytest.approx(1000.0)
    assert rms_level(np.array([3, -4, 3, -4], dtype=np.int16)) == pytest.approx(3.5355, abs=1e-3)
    assert rms_level(np.zeros(0, dtype=np.int16)) == 0.0


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_runs(mock_sd: MagicMock) -> None:
    mock_stream = MagicMock()
    mock_sd.InputStream.return_value = mock_stream

    recorder = SoundDeviceRecorder(device="USB Mic")
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    mock_sd.InputStream.assert_called_once()
    assert mock_sd.InputStream.call_args.kwargs["device"] == "USB Mic"
    assert mock_sd.InputStream.call_args.kwargs["blocksize"] == 1600
    mock_stream.start.assert_called_once()
    assert recorder.running is True

    recorder.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert recorder.running is False

    # Should have emitted sentinel
    assert q.get_nowait() is None


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.start(q)  # second call should be no-op

    assert mock_sd.InputStream.call_count == 1
    recorder.stop()


@patch("recorder.sd")
def test_stop_always_leaves_sentinel(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()
    recorder.stop()  # second stop: should not raise

    assert q.get_nowait() is None
    assert q.get_nowait() is None


# ---------------------------------------------------------------
# Audio callback pushes frames to queue
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_pushes_audio_frames(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder(sample_rate=16000, channels=1, chunk_ms=100)
    q: Queue[AudioFrame | None] = Queue(maxsize=50)
    recorder.start(q)

    recorder._on_audio(_block(1000), frames=1600, time_info=None, status=None)

    frame = q.get_nowait()
    assert isinstance(frame, AudioFrame)
    assert frame.sample_rate == 16000
    assert frame.channels == 1
    assert len(frame.pcm16_bytes) == 1600 * 2  # 16-bit = 2 bytes per sample
    assert frame.level == pytest.approx(1000.0)

    recorder.stop()


@patch("recorder.sd")
def test_callback_status_counts_overflows(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)

    recorder._on_audio(_block(), frames=1600, time_info=None, status="input overflow")

    assert recorder.overflows == 1
    assert q.qsize() == 1
    recorder.stop()


# ---------------------------------------------------------------
# Queue full - dropped chunks counting
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_queue_full_increments_dropped_chunks(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue(maxsize=1)
    recorder.start(q)

    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 0

    # This should be dropped
    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert recorder.dropped_chunks == 1

    recorder.stop()


# ---------------------------------------------------------------
# No sounddevice installed
# ---------------------------------------------------------------

def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    with pytest.raises(RuntimeError, match="sounddevice is not installed"):
        recorder.start(q)


# ---------------------------------------------------------------
# Callback after stop is a no-op
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_after_stop_is_noop(mock_sd: MagicMock) -> None:
    mock_sd.InputStream.return_value = MagicMock()

    recorder = SoundDeviceRecorder()
    q: Queue[AudioFrame | None] = Queue()
    recorder.start(q)
    recorder.stop()

    # Drain sentinel
    q.get_nowait()

    recorder._on_audio(_block(), frames=1600, time_info=None, status=None)
    assert q.empty()
