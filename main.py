"""Application entrypoint: tray app wiring the voice command pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from commands import CAMERA, MODES, SETTINGS, CommandMatcher
from config import JsonConfigStore
from dispatch import DispatchController
from engine import DashscopeTranscriptionEngine
from hotkey import ToggleHotkey
from log_buffer import LogBuffer
from models import SessionState, VoiceStatus
from overlay import OverlayWindow, status_line
from permissions import SoundDevicePermissionProvider
from recorder import SoundDeviceRecorder
from scheduler import ThreadingScheduler
from session_controller import RecognitionSessionManager
from speech_output import Pyttsx3SpeechSink, SpeechOutputGate
from wake_word import WakeWordDetector

try:
    from PySide6.QtCore import QObject, QSize, QTimer, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Welcome to your personal vision assistant. I am here to help you navigate safely. "
    "Say hey vision followed by camera, navigate, emergency, or settings."
)

ICON_STOPPED = "#888888"  # grey
ICON_RUNNING = "#44CC66"  # green
ICON_ERROR = "#FF8800"  # orange


def _create_icon(color: str, size: int = 22) -> QIcon:
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


class UIBridge(QObject):
    status_signal = Signal(object)
    transcript_signal = Signal(str, bool)
    error_signal = Signal(str)
    mode_signal = Signal(str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.voice_config = self.config_store.get_voice_config()
        self.log_buffer = LogBuffer()
        self.log_buffer.attach()

        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.status_signal.connect(self._on_status_ui)
        self.ui.transcript_signal.connect(self.overlay.set_transcript)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.mode_signal.connect(self._on_mode_ui)

        cfg = self.voice_config
        self.scheduler = ThreadingScheduler()
        self.speech_sink = Pyttsx3SpeechSink()
        self.speech = SpeechOutputGate(self.speech_sink, repeat_window_s=cfg.speech_repeat_window_s)
        self.dispatcher = DispatchController(
            wake_detector=WakeWordDetector(threshold=cfg.wake_threshold),
            matcher=CommandMatcher(
                threshold=cfg.command_threshold, adaptive_learning=cfg.adaptive_learning
            ),
            speech=self.speech,
            scheduler=self.scheduler,
            initial_mode=CAMERA,
            duplicate_window=cfg.duplicate_window,
            history_capacity=cfg.history_capacity,
            cooldown_s=cfg.dispatch_cooldown_ms / 1000.0,
            inactivity_s=cfg.inactivity_prompt_ms / 1000.0,
            suggestion_floor=cfg.suggestion_floor,
            on_camera_action=lambda action: self._on_mode_action(CAMERA, action),
            on_navigation_action=lambda action: self._on_mode_action("navigation", action),
            on_emergency_action=lambda action: self._on_mode_action("emergency", action),
            on_settings_change=self._on_settings_change,
            on_mode_change=self.ui.mode_signal.emit,
        )
        self.engine = DashscopeTranscriptionEngine(
            recorder=SoundDeviceRecorder(),
            api_key=self.config_store.get_api_key(),
        )
        self.session = RecognitionSessionManager(
            engine=self.engine,
            permissions=SoundDevicePermissionProvider(),
            dispatcher=self.dispatcher,
            scheduler=self.scheduler,
            speech=self.speech,
            config=cfg,
            on_transcript=self.ui.transcript_signal.emit,
            on_error=lambda code, message: self.ui.error_signal.emit(message),
            on_status_change=self.ui.status_signal.emit,
        )
        self.hotkey = ToggleHotkey(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_STOPPED))
        self.tray.setToolTip("Vision Guide: Voice commands paused")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        self._toggle_action = QAction("Start Listening", menu)
        self._toggle_action.triggered.connect(self.session.toggle)
        menu.addAction(self._toggle_action)

        mode_menu = menu.addMenu("Mode")
        for mode in MODES:
            action = QAction(mode.capitalize(), mode_menu)
            action.triggered.connect(lambda checked=False, m=mode: self._set_mode(m))
            mode_menu.addAction(action)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        logs_action = QAction("Export Logs", menu)
        logs_action.triggered.connect(self._export_logs)
        menu.addAction(logs_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)
        self._menu = menu

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        self.engine.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(None, "Hotkey", "Use pynput key format, e.g. Key.f8")
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    def _export_logs(self) -> None:
        target = Path.home() / f"vision_guide_logs_{int(time.time())}.txt"
        self.log_buffer.export(target)
        QMessageBox.information(None, "Logs", f"Logs written to {target}")

    def _set_mode(self, mode: str) -> None:
        self.dispatcher.set_mode(mode)
        self.speech.speak(f"{mode.capitalize()} mode activated", interrupt=True)
        self._on_mode_ui(mode)

    # ------------------------------------------------------------------
    # Host callbacks (called on engine/timer threads)
    # ------------------------------------------------------------------

    def _on_mode_action(self, mode: str, action: str) -> None:
        # camera, navigation and emergency subsystems live outside this app
        logger.info("%s action requested: %s", mode, action)

    def _on_settings_change(self, setting: str, value: object) -> None:
        if setting == "test":
            return
        settings = self.speech_sink.settings.adjusted(setting, value)
        self.speech_sink.apply_settings(settings)
        self.speech.enabled = settings.enabled
        logger.info("Voice settings now rate=%.1f volume=%.1f", settings.rate, settings.volume)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_status_ui(self, status: VoiceStatus) -> None:
        running = status.recognition_state == SessionState.RUNNING
        if status.last_error and status.recognition_state == SessionState.STOPPED:
            self.tray.setIcon(_create_icon(ICON_ERROR))
        else:
            self.tray.setIcon(_create_icon(ICON_RUNNING if running else ICON_STOPPED))
        self.tray.setToolTip(f"Vision Guide: {status_line(status)}")
        stopped = status.recognition_state == SessionState.STOPPED
        self._toggle_action.setText("Start Listening" if stopped else "Stop Listening")
        self.overlay.show_status(status)

    def _on_mode_ui(self, mode: str) -> None:
        self.tray.setToolTip(f"Vision Guide: {mode} mode")
        if mode == SETTINGS:
            self.tray.showMessage("Vision Guide", "Settings mode: say speed up, louder, or test voice")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_toggle=self.session.toggle)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        try:
            self.speech_sink.start()
        except RuntimeError as exc:
            logger.warning("Spoken feedback disabled: %s", exc)
        QTimer.singleShot(1000, lambda: self.speech.speak(WELCOME_MESSAGE))
        QTimer.singleShot(1500, self.session.start)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.session.close()
        self.speech_sink.close()
        self.log_buffer.detach()
        self.app.quit()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Vision Guide hands-free voice commands")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging verbosity (default: INFO)",
    )
    return parser.parse_args(argv)


def setup_logging(level_name: str) -> None:
    """Configure root logger with a consistent format."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def main() -> int:
    args = parse_args()
    setup_logging(args.log_level)
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
