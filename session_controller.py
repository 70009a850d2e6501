"""State machine that keeps the recognition engine listening."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from config import VoiceConfig
from dispatch import DispatchController
from errors import (
    ERROR_MESSAGES,
    PERMISSION_DENIED,
    TOO_MANY_ERRORS,
    EngineErrorKind,
    ErrorClass,
    classify_error,
    to_error_kind,
)
from interfaces import Cancellable, PermissionProvider, Scheduler, SpeechGate, TranscriptionEngine
from models import (
    EventKind,
    MicPermission,
    RecognitionEvent,
    SessionState,
    TranscriptionResult,
    VoiceStatus,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
TranscriptCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str, str], None]
StatusCallback = Callable[[VoiceStatus], None]

LISTENING_PROMPT = "Listening for your command"


def backoff_delay_ms(error_count: int, base_ms: int = 1000, cap_ms: int = 10000) -> int:
    """Restart delay after ``error_count`` consecutive failures."""
    if error_count <= 0:
        return 0
    # cap the exponent so large counts do not build huge integers
    return int(min(base_ms * 2 ** min(error_count, 32), cap_ms))


class RecognitionSessionManager:
    """Owns the engine handle and its Stopped/Starting/Running lifecycle.

    Engine events and timer callbacks all run under ``scheduler.lock``.
    A normal end of recognition restarts after a short delay, transient
    errors restart with exponential backoff until too many happen in a row,
    and a permission denial stops everything until ``start()`` is called
    again by the user.
    """

    def __init__(
        self,
        engine: TranscriptionEngine,
        permissions: PermissionProvider,
        dispatcher: DispatchController,
        scheduler: Scheduler,
        speech: Optional[SpeechGate] = None,
        config: Optional[VoiceConfig] = None,
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> None:
        self._engine = engine
        self._permissions = permissions
        self._dispatcher = dispatcher
        self._scheduler = scheduler
        self._speech = speech
        self._config = config or VoiceConfig()
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_error = on_error
        self._on_status_change = on_status_change

        self._lock = scheduler.lock
        self._state = SessionState.STOPPED
        self.manual_stop = False
        self.error_count = 0
        self._mic_permission = self._query_permission()
        self._restart_handle: Optional[Cancellable] = None
        self.pending_restart_ms: Optional[int] = None
        self._announce_start = False
        self._transcript = ""
        self._confidence = 0.0
        self._last_error = ""

        dispatcher.is_listening = lambda: self._state == SessionState.RUNNING
        dispatcher.on_change = self._notify_status
        permissions.subscribe(self._on_permission_change)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mic_permission(self) -> MicPermission:
        return self._mic_permission

    @property
    def restart_scheduled(self) -> bool:
        return self._restart_handle is not None

    @property
    def status(self) -> VoiceStatus:
        return VoiceStatus(
            recognition_state=self._state,
            last_command=self._dispatcher.last_command,
            transcript=self._transcript,
            confidence=self._confidence,
            is_processing_command=self._dispatcher.is_processing,
            mic_permission=self._mic_permission,
            error_count=self.error_count,
            last_error=self._last_error,
            history=tuple(self._dispatcher.history),
        )

    def start(self) -> bool:
        """Explicit (user) start; clears a previous manual stop."""
        with self._lock:
            if self._state != SessionState.STOPPED:
                return False
            self.manual_stop = False
            self.error_count = 0
            self._last_error = ""
            self._announce_start = True
            self._cancel_restart()
            return self._begin()

    def stop(self) -> None:
        with self._lock:
            self.manual_stop = True
            self._announce_start = False
            self._cancel_restart()
            self._dispatcher.cancel_timers()
            self._safe_stop_engine()
            self._transition(SessionState.STOPPED)

    def toggle(self) -> None:
        with self._lock:
            if self._state == SessionState.STOPPED:
                self.start()
            else:
                self.stop()

    def close(self) -> None:
        """Release the engine on application teardown."""
        self.stop()
        logger.info("Recognition session closed")

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def handle_event(self, event: RecognitionEvent) -> None:
        with self._lock:
            kind = event.kind
            if kind == EventKind.START.value:
                self._on_engine_start()
            elif kind == EventKind.END.value:
                self._on_engine_end()
            elif kind == EventKind.ERROR.value:
                self._on_engine_error(to_error_kind(event.error), event.message)
            elif kind == EventKind.RESULT.value and event.result is not None:
                self._on_result(event.result)

    def _on_engine_start(self) -> None:
        if self._state != SessionState.STARTING:
            if self.manual_stop:
                # engine came up after stop() raced with it
                self._safe_stop_engine()
            return
        self._transition(SessionState.RUNNING)
        self._dispatcher.reset_inactivity_timer()
        if self._announce_start:
            self._announce_start = False
            self._speak(LISTENING_PROMPT)

    def _on_engine_end(self) -> None:
        if self._state == SessionState.STOPPED:
            return
        if self._state == SessionState.RUNNING:
            self._mark_healthy()
        self._transition(SessionState.STOPPED)
        if not self.manual_stop:
            self._schedule_restart(self._config.restart_delay_ms)

    def _on_engine_error(self, kind: EngineErrorKind, message: str) -> None:
        error_class = classify_error(kind)
        if error_class == ErrorClass.BENIGN:
            logger.debug("Engine reported %s, still listening", kind.value)
            return

        if error_class == ErrorClass.USER_ACTION:
            logger.error("Microphone permission denied: %s", message)
            self._mic_permission = MicPermission.DENIED
            self.manual_stop = True
            self._cancel_restart()
            self._dispatcher.cancel_timers()
            self._safe_stop_engine()
            self._transition(SessionState.STOPPED)
            self._surface(PERMISSION_DENIED)
            return

        if self._state == SessionState.STOPPED:
            logger.debug("Ignoring %s while stopped", kind.value)
            return

        self.error_count += 1
        self._last_error = kind.value
        self._safe_stop_engine()
        self._transition(SessionState.STOPPED)
        if self.error_count > self._config.max_consecutive_errors:
            logger.error("Giving up after %d consecutive errors", self.error_count)
            self.manual_stop = True
            self._dispatcher.cancel_timers()
            self._surface(TOO_MANY_ERRORS)
            return

        delay_ms = backoff_delay_ms(
            self.error_count, self._config.backoff_base_ms, self._config.backoff_cap_ms
        )
        logger.warning(
            "Engine error %s (%s), restart %d in %d ms",
            kind.value,
            message,
            self.error_count,
            delay_ms,
        )
        self._schedule_restart(delay_ms)

    def _on_result(self, result: TranscriptionResult) -> None:
        if self._state != SessionState.STOPPED:
            self._mark_healthy()
        text = result.text.strip()
        confidence = max(0.0, min(1.0, result.confidence))
        self._transcript = text
        self._confidence = confidence
        self._emit(self._on_transcript, text, result.is_final)
        if result.is_final and self._state == SessionState.RUNNING:
            if confidence > self._config.confidence_floor:
                self._dispatcher.process(text, confidence)
            else:
                logger.debug("Low confidence (%.2f) result ignored: %r", confidence, text)
        self._notify_status()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _begin(self) -> bool:
        if self.manual_stop:
            return False
        if self._mic_permission != MicPermission.GRANTED:
            self._mic_permission = self._request_permission()
            if self._mic_permission == MicPermission.DENIED:
                self.manual_stop = True
                self._surface(PERMISSION_DENIED)
                self._notify_status()
                return False

        self._transition(SessionState.STARTING)
        try:
            self._engine.start(self.handle_event)
        except Exception as exc:
            self._on_engine_error(EngineErrorKind.AUDIO_CAPTURE, f"start failed: {exc}")
            return False
        return True

    def _mark_healthy(self) -> None:
        """A cycle that delivered a result or ended cleanly clears the error run."""
        if self.error_count:
            logger.info("Recognition recovered after %d error(s)", self.error_count)
        self.error_count = 0
        self._last_error = ""

    def _restart(self) -> None:
        self._restart_handle = None
        self.pending_restart_ms = None
        if self.manual_stop or self._state != SessionState.STOPPED:
            return
        logger.info("Restarting recognition")
        self._begin()

    def _schedule_restart(self, delay_ms: int) -> None:
        self._cancel_restart()
        self.pending_restart_ms = delay_ms
        self._restart_handle = self._scheduler.call_later(delay_ms / 1000.0, self._restart)

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
        self._restart_handle = None
        self.pending_restart_ms = None

    def _query_permission(self) -> MicPermission:
        try:
            return self._permissions.query()
        except Exception:
            logger.exception("Permission query failed")
            return MicPermission.PROMPT

    def _request_permission(self) -> MicPermission:
        try:
            return self._permissions.request()
        except Exception:
            logger.exception("Permission request failed")
            return MicPermission.DENIED

    def _on_permission_change(self, permission: MicPermission) -> None:
        with self._lock:
            if permission == self._mic_permission:
                return
            logger.info("Microphone permission: %s", permission.value)
            self._mic_permission = permission
            self._notify_status()

    def _surface(self, code: str) -> None:
        message = ERROR_MESSAGES[code]
        self._last_error = code
        self._emit(self._on_error, code, message)
        self._speak(message, interrupt=True)

    def _speak(self, text: str, interrupt: bool = False) -> None:
        if self._speech is not None:
            self._speech.speak(text, interrupt=interrupt)

    def _safe_stop_engine(self) -> None:
        try:
            self._engine.stop()
        except Exception:
            logger.exception("Engine stop failed")

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.info("Recognition %s -> %s", from_state.value, to_state.value)
        self._emit(self._on_state_change, from_state, to_state)
        self._notify_status()

    def _notify_status(self) -> None:
        self._emit(self._on_status_change, self.status)

    def _emit(self, callback: Optional[Callable[..., None]], *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Session callback %r failed", callback)
