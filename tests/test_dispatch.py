from __future__ import annotations

import threading
from typing import Callable

from commands import CAMERA, NAVIGATION, SETTINGS, CommandMatcher
from dispatch import (
    EMPTY_REPLY,
    HELP_REPLY,
    INACTIVITY_PROMPT,
    MODE_REPLIES,
    NO_MATCH,
    STATUS_REPLY,
    SUGGESTION_REPLY,
    UNKNOWN_REPLY,
    CommandHistory,
    DispatchController,
    LearningStats,
)
from models import CommandPattern
from wake_word import WakeWordDetector


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock; callbacks fire only from ``advance``."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.now = 0.0
        self._timers: list[tuple[float, int, FakeHandle, Callable[[], None]]] = []
        self._seq = 0

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle()
        self._seq += 1
        self._timers.append((self.now + delay_s, self._seq, handle, callback))
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted(t for t in self._timers if not t[2].cancelled and t[0] <= target)
            if not due:
                break
            when, _, handle, callback = due[0]
            self._timers.remove(due[0])
            self.now = when
            handle.cancelled = True
            with self.lock:
                callback()
        self.now = target


class FakeGate:
    def __init__(self) -> None:
        self.spoken: list[tuple[str, bool]] = []

    def speak(self, text: str, interrupt: bool = False) -> bool:
        self.spoken.append((text, interrupt))
        return True

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.spoken]


def _make(**kwargs: object) -> tuple[DispatchController, FakeScheduler, FakeGate]:
    scheduler = FakeScheduler()
    gate = FakeGate()
    kwargs.setdefault("matcher", CommandMatcher())
    controller = DispatchController(
        wake_detector=WakeWordDetector(),
        speech=gate,
        scheduler=scheduler,
        **kwargs,
    )
    return controller, scheduler, gate


def _camera_only_matcher() -> CommandMatcher:
    return CommandMatcher(table=(CommandPattern(action=CAMERA, patterns=("camera",)),), subcommands=())


def test_mode_command_switches_mode_and_speaks_once() -> None:
    modes: list[str] = []
    controller, scheduler, gate = _make(on_mode_change=modes.append)

    controller.process("Hey vision, navigate", 0.9)

    assert controller.current_mode == NAVIGATION
    assert controller.last_command == NAVIGATION
    assert modes == [NAVIGATION]
    assert gate.spoken == [(MODE_REPLIES[NAVIGATION], True)]
    assert controller.stats.get(NAVIGATION).success_count == 1
    assert controller.is_processing is True

    scheduler.advance(2.0)
    assert controller.is_processing is False


def test_duplicate_transcript_is_dropped() -> None:
    controller, scheduler, gate = _make()

    controller.process("hey vision navigate", 0.9)
    scheduler.advance(2.5)
    controller.process("Hey vision navigate ", 0.9)

    assert len(gate.spoken) == 1
    assert len(controller.history) == 1


def test_transcript_dropped_while_dispatch_in_flight() -> None:
    controller, scheduler, gate = _make()

    controller.process("hey vision navigate", 0.9)
    controller.process("hey vision help", 0.9)

    assert gate.texts == [MODE_REPLIES[NAVIGATION]]
    assert list(controller.history) == ["hey vision navigate"]

    scheduler.advance(2.0)
    controller.process("hey vision help", 0.9)
    assert gate.texts[-1] == HELP_REPLY


def test_speech_without_wake_phrase_is_only_recorded() -> None:
    controller, _, gate = _make()

    controller.process("what a nice day", 0.9)

    assert gate.spoken == []
    assert list(controller.history) == ["what a nice day"]
    assert controller.is_processing is False


def test_empty_transcript_is_ignored() -> None:
    controller, _, gate = _make()

    controller.process("   ", 0.9)

    assert len(controller.history) == 0
    assert gate.spoken == []


def test_subcommand_beats_top_level_command() -> None:
    actions: list[str] = []
    controller, _, gate = _make(on_camera_action=actions.append)

    controller.process("hey vision start camera", 0.9)

    assert actions == ["start"]
    assert controller.last_command == "camera:start"
    assert controller.current_mode == CAMERA
    assert gate.texts == ["Starting camera for object detection"]


def test_settings_subcommand_reports_change() -> None:
    changes: list[tuple[str, object]] = []
    controller, _, gate = _make(
        initial_mode=SETTINGS, on_settings_change=lambda s, v: changes.append((s, v))
    )

    controller.process("hey vision speed up", 0.9)

    assert changes == [("speechRate", "increase")]
    assert gate.texts == ["Speech rate increased"]


def test_status_reports_current_mode() -> None:
    controller, _, gate = _make()

    controller.process("hey vision status", 0.9)

    assert gate.texts == [STATUS_REPLY.format(mode=CAMERA)]
    assert controller.current_mode == CAMERA


def test_miss_suggests_closest_phrase() -> None:
    controller, _, gate = _make(matcher=_camera_only_matcher())

    controller.process("hey vision camel", 0.9)

    assert gate.texts == [SUGGESTION_REPLY.format(phrase="camera")]
    assert controller.stats.get(NO_MATCH).failure_count == 1


def test_miss_without_suggestion_repeats_what_was_heard() -> None:
    controller, _, gate = _make(matcher=_camera_only_matcher())

    controller.process("hey vision zebra", 0.9)

    assert gate.texts == [UNKNOWN_REPLY.format(text="zebra")]


def test_wake_phrase_alone_asks_for_command() -> None:
    controller, _, gate = _make()

    controller.process("hey vision", 0.9)

    assert gate.spoken == [(EMPTY_REPLY, True)]


def test_host_callback_failure_does_not_block_reply() -> None:
    def broken(mode: str) -> None:
        raise RuntimeError("ui gone")

    controller, _, gate = _make(on_mode_change=broken)

    controller.process("hey vision navigate", 0.9)

    assert controller.current_mode == NAVIGATION
    assert gate.texts == [MODE_REPLIES[NAVIGATION]]


def test_inactivity_prompt_repeats() -> None:
    controller, scheduler, gate = _make()

    controller.reset_inactivity_timer()
    scheduler.advance(60.0)
    assert gate.spoken == [(INACTIVITY_PROMPT, False)]

    scheduler.advance(60.0)
    assert gate.texts == [INACTIVITY_PROMPT, INACTIVITY_PROMPT]


def test_inactivity_prompt_silent_when_not_listening() -> None:
    controller, scheduler, gate = _make(is_listening=lambda: False)

    controller.reset_inactivity_timer()
    scheduler.advance(120.0)

    assert gate.spoken == []


def test_activity_pushes_back_inactivity_prompt() -> None:
    controller, scheduler, gate = _make()

    controller.reset_inactivity_timer()
    scheduler.advance(50.0)
    controller.process("what a nice day", 0.9)
    scheduler.advance(50.0)

    assert gate.spoken == []


def test_cancel_timers_releases_guard_and_silences_prompts() -> None:
    controller, scheduler, gate = _make()

    controller.process("hey vision navigate", 0.9)
    controller.cancel_timers()

    assert controller.is_processing is False
    scheduler.advance(120.0)
    assert gate.texts == [MODE_REPLIES[NAVIGATION]]


def test_set_mode_ignores_unknown_modes() -> None:
    controller, _, _ = _make()

    controller.set_mode(SETTINGS)
    controller.set_mode("disco")

    assert controller.current_mode == SETTINGS


def test_command_history_is_bounded() -> None:
    history = CommandHistory(capacity=3)
    for text in ["one", "two", "three", "four"]:
        history.append(text)

    assert list(history) == ["two", "three", "four"]
    assert history.recent(2) == ["three", "four"]
    assert history.recent(0) == []


def test_learning_stats_returns_copies() -> None:
    stats = LearningStats()
    stats.record_success(CAMERA)
    stats.record_failure(CAMERA)

    copy = stats.get(CAMERA)
    copy.success_count = 10

    assert stats.get(CAMERA).success_count == 1
    assert stats.get(CAMERA).success_rate == 0.5
    assert stats.get(NAVIGATION).success_count == 0
    stats.reset()
    assert CAMERA not in stats.view()
