"""Spoken feedback: voice settings, the output gate and a pyttsx3 sink."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from queue import Empty, Queue
from typing import Callable, Optional

from interfaces import SpeechSink

logger = logging.getLogger(__name__)

try:
    import pyttsx3
except Exception:  # pragma: no cover
    pyttsx3 = None  # type: ignore

BASE_WORDS_PER_MINUTE = 200
SETTING_STEP = 0.1


@dataclass(frozen=True)
class VoiceSettings:
    rate: float = 0.8
    volume: float = 1.0
    enabled: bool = True

    def adjusted(self, setting: str, direction: object) -> "VoiceSettings":
        """Apply one voice command style change ("speechRate", "increase")."""
        step = SETTING_STEP if direction == "increase" else -SETTING_STEP
        if setting == "speechRate":
            return replace(self, rate=round(min(2.0, max(0.1, self.rate + step)), 2))
        if setting == "speechVolume":
            return replace(self, volume=round(min(1.0, max(0.1, self.volume + step)), 2))
        if setting == "reset":
            return VoiceSettings()
        return self


class SpeechOutputGate:
    """Single entry point for spoken feedback.

    Drops empty text, repeats of the last utterance inside ``repeat_window_s``
    and anything said while the sink is busy. With ``interrupt=True`` a busy
    sink is cancelled first, unless it is still saying the same text.
    """

    def __init__(
        self,
        sink: SpeechSink,
        repeat_window_s: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._repeat_window_s = repeat_window_s
        self._clock = clock
        self._lock = threading.Lock()
        self._last_text = ""
        self._last_at: Optional[float] = None
        self.enabled = True

    @property
    def last_text(self) -> str:
        return self._last_text

    def speak(self, text: str, interrupt: bool = False) -> bool:
        if not isinstance(text, str) or not text.strip():
            return False
        text = text.strip()
        with self._lock:
            if not self.enabled:
                return False
            now = self._clock()
            if (
                text == self._last_text
                and self._last_at is not None
                and now - self._last_at < self._repeat_window_s
            ):
                logger.debug("Repeated speech dropped: %r", text)
                return False

            if self._is_busy():
                if not interrupt or text == self._last_text:
                    logger.debug("Speech in progress, dropped: %r", text)
                    return False
                self._stop_sink()

            try:
                self._sink.say(text)
            except Exception:
                logger.exception("Speech output failed")
                return False
            self._last_text = text
            self._last_at = now
            return True

    def cancel(self) -> None:
        with self._lock:
            self._stop_sink()

    def _is_busy(self) -> bool:
        try:
            return bool(self._sink.is_busy())
        except Exception:
            logger.exception("Speech sink busy check failed")
            return False

    def _stop_sink(self) -> None:
        try:
            self._sink.stop()
        except Exception:
            logger.exception("Speech sink stop failed")


class Pyttsx3SpeechSink:
    """Text-to-speech on a worker thread; pyttsx3 engines are thread-bound."""

    def __init__(self, settings: VoiceSettings = VoiceSettings()) -> None:
        self._settings = settings
        self._queue: Queue[Optional[str]] = Queue()
        self._thread: Optional[threading.Thread] = None
        self._engine = None
        self._busy = threading.Event()

    @property
    def settings(self) -> VoiceSettings:
        return self._settings

    def apply_settings(self, settings: VoiceSettings) -> None:
        self._settings = settings

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        if pyttsx3 is None:
            raise RuntimeError("pyttsx3 is not installed")
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def say(self, text: str) -> None:
        self._busy.set()
        if self._thread is None or not self._thread.is_alive():
            try:
                self.start()
            except RuntimeError:
                self._busy.clear()
                raise
        self._queue.put(text)

    def stop(self) -> None:
        self._drain()
        engine = self._engine
        if engine is not None:
            engine.stop()

    def is_busy(self) -> bool:
        return self._busy.is_set()

    def close(self) -> None:
        self._drain()
        self._queue.put(None)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except Empty:
                return

    def _worker(self) -> None:
        try:
            self._engine = pyttsx3.init()
            while True:
                text = self._queue.get()
                if text is None:
                    break
                settings = self._settings
                try:
                    self._engine.setProperty("rate", int(BASE_WORDS_PER_MINUTE * settings.rate))
                    self._engine.setProperty("volume", settings.volume)
                    self._engine.say(text)
                    self._engine.runAndWait()
                except Exception:
                    logger.exception("Text-to-speech failed for %r", text)
                finally:
                    if self._queue.empty():
                        self._busy.clear()
        except Exception:
            logger.exception("Text-to-speech engine failed")
            self._drain()
        finally:
            self._busy.clear()
