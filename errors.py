"""Shared error codes, engine error kinds and user-facing messages."""

from __future__ import annotations

from enum import Enum

PERMISSION_DENIED = "PERMISSION_DENIED"
TOO_MANY_ERRORS = "TOO_MANY_ERRORS"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
AUDIO_CAPTURE = "AUDIO_CAPTURE"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"

ERROR_MESSAGES = {
    PERMISSION_DENIED: (
        "Microphone access was denied. Allow microphone access, "
        "then start voice commands again."
    ),
    TOO_MANY_ERRORS: (
        "Voice recognition keeps failing. Please refresh or restart the application."
    ),
    NETWORK_ERROR: "Network failed, retrying.",
    AUTH_FAILED: "API key is invalid.",
    AUDIO_CAPTURE: "Microphone could not be opened, retrying.",
    ASR_PROTOCOL_ERROR: "Recognition response format is invalid.",
}


class EngineErrorKind(str, Enum):
    NO_SPEECH = "no-speech"
    ABORTED = "aborted"
    AUDIO_CAPTURE = "audio-capture"
    NETWORK = "network"
    PERMISSION_DENIED = "permission-denied"
    UNKNOWN = "unknown"


class ErrorClass(str, Enum):
    BENIGN = "benign"
    TRANSIENT = "transient"
    USER_ACTION = "user-action"


_ALIASES = {
    "not-allowed": EngineErrorKind.PERMISSION_DENIED,
    "service-not-allowed": EngineErrorKind.PERMISSION_DENIED,
}


def to_error_kind(value: object) -> EngineErrorKind:
    """Coerce an engine-reported error name into a known kind."""
    if isinstance(value, EngineErrorKind):
        return value
    name = str(value or "").strip().lower()
    if name in _ALIASES:
        return _ALIASES[name]
    try:
        return EngineErrorKind(name)
    except ValueError:
        return EngineErrorKind.UNKNOWN


def classify_error(kind: object) -> ErrorClass:
    kind = to_error_kind(kind)
    if kind == EngineErrorKind.NO_SPEECH:
        return ErrorClass.BENIGN
    if kind == EngineErrorKind.PERMISSION_DENIED:
        return ErrorClass.USER_ACTION
    return ErrorClass.TRANSIENT
