"""Continuous transcription engine using DashScope qwen3-asr-flash.

A worker thread reads microphone frames, cuts them into utterances with a
simple loudness gate and sends each utterance to the model with
``stream=True``. Streamed chunks become interim results, the last chunk
becomes the final result. Like a browser recognizer the engine ends on its
own after ``max_session_s`` (or after a no-speech timeout) and the session
manager starts it again.
"""

from __future__ import annotations

import base64
import io
import logging
import threading
import time
import wave
from queue import Empty, Queue
from typing import Callable, Optional

from errors import AUTH_FAILED, ERROR_MESSAGES, EngineErrorKind
from interfaces import Recorder
from models import AudioFrame, EventKind, RecognitionEvent, TranscriptionResult

logger = logging.getLogger(__name__)

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

# the service reports no per-result confidence
DEFAULT_CONFIDENCE = 0.8


def _pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return base64.b64encode(buf.getvalue()).decode("ascii")


def capture_error_kind(exc: BaseException) -> EngineErrorKind:
    """Map a failure to open the microphone to an engine error kind."""
    if isinstance(exc, PermissionError):
        return EngineErrorKind.PERMISSION_DENIED
    low = str(exc).lower()
    if "permission" in low or "not authorized" in low:
        return EngineErrorKind.PERMISSION_DENIED
    return EngineErrorKind.AUDIO_CAPTURE


def request_error_kind(exc: BaseException) -> EngineErrorKind:
    """Map an SDK/network exception to an engine error kind."""
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return EngineErrorKind.NETWORK
    low = str(exc).lower()
    if "timeout" in low or "network" in low or "connection" in low:
        return EngineErrorKind.NETWORK
    return EngineErrorKind.UNKNOWN


class _Run:
    """One start/stop cycle: its own stop flag and event callback."""

    def __init__(self, on_event: Callable[[RecognitionEvent], None]) -> None:
        self.on_event = on_event
        self.stop_event = threading.Event()

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def emit(self, event: RecognitionEvent) -> None:
        if self.stop_event.is_set():
            return
        self.on_event(event)

    def emit_error(self, kind: EngineErrorKind, message: str) -> None:
        self.emit(RecognitionEvent(kind=EventKind.ERROR.value, error=kind, message=message))


class DashscopeTranscriptionEngine:
    def __init__(
        self,
        recorder: Recorder,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
        energy_threshold: float = 500.0,
        silence_ms: int = 700,
        max_utterance_s: float = 10.0,
        no_speech_timeout_s: float = 8.0,
        max_session_s: float = 60.0,
        default_confidence: float = DEFAULT_CONFIDENCE,
        queue_maxsize: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._recorder = recorder
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._energy_threshold = energy_threshold
        self._silence_ms = silence_ms
        self._max_utterance_s = max_utterance_s
        self._no_speech_timeout_s = no_speech_timeout_s
        self._max_session_s = max_session_s
        self._default_confidence = default_confidence
        self._queue_maxsize = queue_maxsize
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._run: Optional[_Run] = None

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None:
        run = self._run
        if run is not None and not run.stopped and self._thread and self._thread.is_alive():
            return
        # a worker left over from a stopped run keeps its own (set) stop flag
        run = _Run(on_event)
        self._run = run
        self._thread = threading.Thread(target=self._worker, args=(run,), daemon=True)
        self._thread.start()

    def stop(self) -> None:
        run = self._run
        if run is not None:
            run.stop_event.set()
        try:
            self._recorder.stop()
        except Exception:
            logger.exception("Recorder stop failed")
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(self, run: _Run) -> None:
        if dashscope is None:
            run.emit_error(EngineErrorKind.UNKNOWN, "dashscope is not installed")
            return
        if not self._api_key:
            run.emit_error(EngineErrorKind.UNKNOWN, ERROR_MESSAGES[AUTH_FAILED])
            return

        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        try:
            self._recorder.start(audio_queue)
        except Exception as exc:
            run.emit_error(capture_error_kind(exc), str(exc))
            return

        run.emit(RecognitionEvent(kind=EventKind.START.value))
        try:
            self._listen(run, audio_queue)
        finally:
            # once stopped, the recorder may already belong to a newer run
            if not run.stopped:
                try:
                    self._recorder.stop()
                except Exception:
                    logger.exception("Recorder stop failed")
        run.emit(RecognitionEvent(kind=EventKind.END.value))

    def _listen(self, run: _Run, audio_queue: Queue[AudioFrame | None]) -> None:
        started = self._clock()
        heard_speech = False
        segment = bytearray()
        in_speech = False
        silence_ms = 0.0
        sample_rate, channels = 16000, 1

        while not run.stopped:
            elapsed = self._clock() - started
            if elapsed >= self._max_session_s:
                break
            if not heard_speech and elapsed >= self._no_speech_timeout_s:
                run.emit_error(EngineErrorKind.NO_SPEECH, "no speech detected")
                return
            try:
                frame = audio_queue.get(timeout=0.1)
            except Empty:
                continue
            if frame is None:  # Sentinel
                break

            sample_rate, channels = frame.sample_rate, frame.channels
            frame_ms = len(frame.pcm16_bytes) / (2.0 * channels * sample_rate) * 1000.0
            if frame.level >= self._energy_threshold:
                heard_speech = True
                in_speech = True
                silence_ms = 0.0
                segment.extend(frame.pcm16_bytes)
            elif in_speech:
                segment.extend(frame.pcm16_bytes)
                silence_ms += frame_ms

            max_bytes = int(self._max_utterance_s * sample_rate * channels * 2)
            if in_speech and (silence_ms >= self._silence_ms or len(segment) >= max_bytes):
                if not self._transcribe(run, bytes(segment), sample_rate, channels):
                    return
                segment.clear()
                in_speech = False
                silence_ms = 0.0

        if segment and not run.stopped:
            self._transcribe(run, bytes(segment), sample_rate, channels)

    def _transcribe(self, run: _Run, pcm: bytes, sample_rate: int, channels: int) -> bool:
        """Send one utterance and stream back results; False on error."""
        wav_b64 = _pcm_to_wav_base64(pcm, sample_rate, channels)
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=self._api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": wav_b64}]},
                ],
                result_format="message",
                asr_options={"enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            run.emit_error(request_error_kind(exc), str(exc))
            return False

        latest_text = ""
        try:
            for chunk in response:
                if run.stopped:
                    return False
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                    self._emit_result(run, text, is_final=False)
        except Exception as exc:
            run.emit_error(request_error_kind(exc), str(exc))
            return False

        if latest_text:
            self._emit_result(run, latest_text, is_final=True)
        return True

    def _emit_result(self, run: _Run, text: str, is_final: bool) -> None:
        result = TranscriptionResult(
            text=text, is_final=is_final, confidence=self._default_confidence
        )
        run.emit(RecognitionEvent(kind=EventKind.RESULT.value, result=result))

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        if isinstance(chunk, dict):
            output = chunk.get("output", {})
            choices = output.get("choices", [])
            if not choices:
                return ""
            content = choices[0].get("message", {}).get("content", [])
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""
