"""Routing of recognized commands to the host application."""

from __future__ import annotations

import logging
from collections import deque
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from commands import CAMERA, EMERGENCY, HELP, MODES, NAVIGATION, SETTINGS, STATUS, CommandMatcher
from interfaces import Scheduler, SpeechGate
from models import CommandMatch, LearningStat
from similarity import best_match
from wake_word import WakeWordDetector

logger = logging.getLogger(__name__)

NO_MATCH = "no_match"

MODE_REPLIES = {
    CAMERA: "Camera mode activated. I will describe what I see around you.",
    NAVIGATION: "Navigation mode activated. I will guide your steps.",
    EMERGENCY: "Emergency panel opened. Say call emergency for immediate assistance.",
    SETTINGS: "Settings panel opened.",
}
HELP_REPLY = (
    "Say hey vision followed by: camera for object detection, navigate for walking "
    "guidance, emergency for help, or settings for preferences. You can also say "
    "status to check the current mode."
)
STATUS_REPLY = (
    "You are currently in {mode} mode. Say hey vision followed by camera, navigate, "
    "emergency, or settings to switch modes."
)
SUGGESTION_REPLY = "Did you mean {phrase}? Say hey vision help to hear available commands."
UNKNOWN_REPLY = "I heard: {text}. Say hey vision help to hear available commands."
EMPTY_REPLY = "Say hey vision followed by a command, or hey vision help."
INACTIVITY_PROMPT = "I did not hear anything. Say hey vision to activate commands."

ActionCallback = Callable[[str], None]
SettingsCallback = Callable[[str, object], None]


class CommandHistory:
    """Most recent final transcripts, oldest first."""

    def __init__(self, capacity: int = 10) -> None:
        self._entries: deque[str] = deque(maxlen=max(1, capacity))

    def append(self, transcript: str) -> None:
        self._entries.append(transcript)

    def recent(self, count: int) -> list[str]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))


class LearningStats:
    def __init__(self) -> None:
        self._stats: dict[str, LearningStat] = {}

    def record_success(self, action: str) -> None:
        self._stats.setdefault(action, LearningStat()).success_count += 1

    def record_failure(self, action: str) -> None:
        self._stats.setdefault(action, LearningStat()).failure_count += 1

    def get(self, action: str) -> LearningStat:
        stat = self._stats.get(action, LearningStat())
        return LearningStat(stat.success_count, stat.failure_count)

    def view(self) -> Mapping[str, LearningStat]:
        return MappingProxyType(self._stats)

    def reset(self) -> None:
        self._stats.clear()


class DispatchController:
    def __init__(
        self,
        wake_detector: WakeWordDetector,
        matcher: CommandMatcher,
        speech: SpeechGate,
        scheduler: Scheduler,
        initial_mode: str = CAMERA,
        duplicate_window: int = 3,
        history_capacity: int = 10,
        cooldown_s: float = 2.0,
        inactivity_s: float = 60.0,
        suggestion_floor: float = 0.4,
        is_listening: Optional[Callable[[], bool]] = None,
        on_camera_action: Optional[ActionCallback] = None,
        on_navigation_action: Optional[ActionCallback] = None,
        on_emergency_action: Optional[ActionCallback] = None,
        on_settings_change: Optional[SettingsCallback] = None,
        on_mode_change: Optional[ActionCallback] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._wake = wake_detector
        self._matcher = matcher
        self._speech = speech
        self._scheduler = scheduler
        self._duplicate_window = duplicate_window
        self._cooldown_s = cooldown_s
        self._inactivity_s = inactivity_s
        self._suggestion_floor = suggestion_floor
        self.is_listening = is_listening or (lambda: True)
        self.on_change = on_change

        self._mode_actions = {
            CAMERA: on_camera_action,
            NAVIGATION: on_navigation_action,
            EMERGENCY: on_emergency_action,
        }
        self._on_settings_change = on_settings_change
        self._on_mode_change = on_mode_change

        self.current_mode = initial_mode
        self.last_command = ""
        self.history = CommandHistory(history_capacity)
        self.stats = LearningStats()
        self._in_flight = False
        self._cooldown_handle = None
        self._inactivity_handle = None

    @property
    def is_processing(self) -> bool:
        return self._in_flight

    def set_mode(self, mode: str) -> None:
        """Host-driven mode change (e.g. a tray menu click)."""
        if mode in MODES:
            self.current_mode = mode

    def process(self, transcript: str, confidence: float) -> None:
        with self._scheduler.lock:
            text = (transcript or "").strip()
            if not text:
                return
            if self._in_flight:
                logger.debug("Dispatch in flight, dropping %r", text)
                return
            key = text.lower()
            if key in self.history.recent(self._duplicate_window):
                logger.debug("Duplicate transcript dropped: %r", text)
                return

            recent = self.history.recent(self._duplicate_window)
            self.history.append(key)
            self.reset_inactivity_timer()

            wake = self._wake.detect(text, recent)
            if not wake.activated:
                logger.debug("No wake phrase in %r (%.2f)", text, wake.confidence)
                self._notify()
                return

            self._begin_cooldown()
            sub = self._matcher.match_subcommand(wake.residual, self.current_mode)
            top = self._matcher.match(wake.residual, self.current_mode, self.stats.view())
            if sub is not None and (top is None or sub.similarity > top.similarity):
                chosen: Optional[CommandMatch] = sub
            else:
                chosen = top

            if chosen is None:
                self._handle_miss(wake.residual)
            else:
                logger.info(
                    "Command %s (%s, confidence %.2f, engine %.2f)",
                    chosen.action,
                    chosen.method,
                    chosen.confidence,
                    confidence,
                )
                self._dispatch(chosen)
            self._notify()

    def reset_inactivity_timer(self) -> None:
        with self._scheduler.lock:
            if self._inactivity_handle is not None:
                self._inactivity_handle.cancel()
            self._inactivity_handle = self._scheduler.call_later(
                self._inactivity_s, self._on_inactivity
            )

    def cancel_timers(self) -> None:
        with self._scheduler.lock:
            for handle in (self._cooldown_handle, self._inactivity_handle):
                if handle is not None:
                    handle.cancel()
            self._cooldown_handle = None
            self._inactivity_handle = None
            if self._in_flight:
                self._in_flight = False
                self._notify()

    def _dispatch(self, match: CommandMatch) -> None:
        sub = match.subcommand
        if sub is not None:
            if sub.mode == SETTINGS:
                self._call(self._on_settings_change, sub.action, sub.value)
            else:
                self._call(self._mode_actions.get(sub.mode), sub.action)
            self.last_command = f"{sub.mode}:{sub.action}"
            self._speech.speak(sub.reply, interrupt=True)
        elif match.action in MODES:
            self.current_mode = match.action
            self._call(self._on_mode_change, match.action)
            self.last_command = match.action
            self._speech.speak(MODE_REPLIES[match.action], interrupt=True)
        elif match.action == STATUS:
            self.last_command = STATUS
            self._speech.speak(STATUS_REPLY.format(mode=self.current_mode), interrupt=True)
        elif match.action == HELP:
            self.last_command = HELP
            self._speech.speak(HELP_REPLY, interrupt=True)
        else:
            # custom tables may carry actions without a built-in handler
            self._call(self._on_mode_change, match.action)
            self.last_command = match.action
        self.stats.record_success(match.action)

    def _handle_miss(self, residual: str) -> None:
        self.stats.record_failure(NO_MATCH)
        if not residual:
            self._speech.speak(EMPTY_REPLY, interrupt=True)
            return
        suggestion = best_match(
            residual, self._matcher.known_phrases(self.current_mode), self._suggestion_floor
        )
        if suggestion is not None:
            logger.info("No command for %r, suggesting %r", residual, suggestion[0])
            self._speech.speak(SUGGESTION_REPLY.format(phrase=suggestion[0]), interrupt=True)
        else:
            logger.info("No command for %r", residual)
            self._speech.speak(UNKNOWN_REPLY.format(text=residual), interrupt=True)

    def _begin_cooldown(self) -> None:
        self._in_flight = True
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
        self._cooldown_handle = self._scheduler.call_later(self._cooldown_s, self._release)

    def _release(self) -> None:
        self._cooldown_handle = None
        self._in_flight = False
        self._notify()

    def _on_inactivity(self) -> None:
        self._inactivity_handle = None
        if self.is_listening() and not self._in_flight:
            self._speech.speak(INACTIVITY_PROMPT)
        self._inactivity_handle = self._scheduler.call_later(
            self._inactivity_s, self._on_inactivity
        )

    def _call(self, callback: Optional[Callable[..., None]], *args: object) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Host callback %r failed", callback)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change()
