"""Protocol interfaces for the collaborators around the session manager."""

from __future__ import annotations

import threading
from queue import Queue
from typing import Callable, Protocol

from models import AudioFrame, MicPermission, RecognitionEvent


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class TranscriptionEngine(Protocol):
    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None: ...

    def stop(self) -> None: ...


class PermissionProvider(Protocol):
    def query(self) -> MicPermission: ...

    def request(self) -> MicPermission: ...

    def subscribe(self, callback: Callable[[MicPermission], None]) -> None: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    lock: threading.RLock

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> Cancellable: ...


class SpeechSink(Protocol):
    def say(self, text: str) -> None: ...

    def stop(self) -> None: ...

    def is_busy(self) -> bool: ...


class SpeechGate(Protocol):
    def speak(self, text: str, interrupt: bool = False) -> bool: ...
