"""Core data models for the voice command pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from errors import EngineErrorKind


class SessionState(str, Enum):
    STOPPED = "Stopped"
    STARTING = "Starting"
    RUNNING = "Running"


class MicPermission(str, Enum):
    GRANTED = "Granted"
    DENIED = "Denied"
    PROMPT = "Prompt"


class EventKind(str, Enum):
    START = "start"
    END = "end"
    ERROR = "error"
    RESULT = "result"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0
    level: float = 0.0


@dataclass
class TranscriptionResult:
    text: str
    is_final: bool
    confidence: float


@dataclass
class RecognitionEvent:
    kind: str
    result: Optional[TranscriptionResult] = None
    error: Optional[EngineErrorKind] = None
    message: str = ""


@dataclass(frozen=True)
class CommandPattern:
    action: str
    patterns: Tuple[str, ...]
    phonetic_variants: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()
    context_tags: Tuple[str, ...] = ()
    weight: float = 1.0


@dataclass(frozen=True)
class SubCommand:
    """A phrase group that only applies while its mode is active."""

    mode: str
    action: str
    patterns: Tuple[str, ...]
    reply: str
    value: object = True


@dataclass
class LearningStat:
    success_count: int = 0
    failure_count: int = 0

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        if total <= 0:
            return 0.0
        return self.success_count / total


@dataclass
class WakeResult:
    activated: bool
    confidence: float
    residual: str


@dataclass
class CommandMatch:
    action: str
    confidence: float
    method: str
    similarity: float = 0.0
    phrase: str = ""
    subcommand: Optional[SubCommand] = None


@dataclass
class VoiceStatus:
    """Read-only snapshot of the session for display."""

    recognition_state: SessionState = SessionState.STOPPED
    last_command: str = ""
    transcript: str = ""
    confidence: float = 0.0
    is_processing_command: bool = False
    mic_permission: MicPermission = MicPermission.PROMPT
    error_count: int = 0
    last_error: str = ""
    history: Tuple[str, ...] = field(default_factory=tuple)
