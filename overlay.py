"""Overlay window showing the live transcript and listening status."""

from __future__ import annotations

from models import SessionState, VoiceStatus

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

_LABEL_STYLE = (
    "color: {color}; font-size: {size}px; padding: 12px 16px;"
    "background: rgba(0,0,0,{alpha}); border-radius: 12px;"
)

STATE_TEXT = {
    SessionState.RUNNING: 'Listening for "Hey Vision"...',
    SessionState.STARTING: "Starting microphone...",
    SessionState.STOPPED: "Voice commands paused",
}


def status_line(status: VoiceStatus) -> str:
    """One-line summary of the session for the status label."""
    parts = [STATE_TEXT.get(status.recognition_state, status.recognition_state.value)]
    if status.is_processing_command:
        parts.append("processing")
    if status.last_command:
        parts.append(f"last: {status.last_command}")
    if status.error_count:
        parts.append(f"retry {status.error_count}")
    return " | ".join(parts)


class OverlayWindow(QWidget):
    """Large-print, always-on-top panel. Display only; it never drives the session."""

    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool)
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setFixedWidth(640)

        self._status = QLabel("")
        self._status.setStyleSheet(_LABEL_STYLE.format(color="#9BE7A0", size=16, alpha=170))
        self._transcript = QLabel("")
        self._transcript.setWordWrap(True)
        self._transcript.setStyleSheet(_LABEL_STYLE.format(color="white", size=22, alpha=190))

        layout = QVBoxLayout()
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(6)
        layout.addWidget(self._status)
        layout.addWidget(self._transcript)
        self.setLayout(layout)

        self._hide_timer: QTimer | None = None

    def _center_top(self) -> None:
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        self.adjustSize()
        self.move(geom.x() + (geom.width() - self.width()) // 2, geom.y() + 40)

    def show_status(self, status: VoiceStatus) -> None:
        self._status.setText(status_line(status))
        self._status.setStyleSheet(
            _LABEL_STYLE.format(
                color="#9BE7A0" if status.recognition_state == SessionState.RUNNING else "#CCCCCC",
                size=16,
                alpha=170,
            )
        )
        self._center_top()
        self.show()

    def set_transcript(self, text: str, is_final: bool) -> None:
        self._cancel_hide_timer()
        self._transcript.setStyleSheet(_LABEL_STYLE.format(color="white", size=22, alpha=190))
        self._transcript.setText(f'You said: "{text}"' if is_final else text)
        self._center_top()
        self.show()
        if is_final:
            self.clear_transcript_later(3000)

    def show_error(self, text: str) -> None:
        self._cancel_hide_timer()
        self._transcript.setStyleSheet(_LABEL_STYLE.format(color="#FF6B6B", size=22, alpha=210))
        self._transcript.setText(text)
        self._center_top()
        self.show()

    def clear_transcript_later(self, delay_ms: int) -> None:
        self._cancel_hide_timer()
        if QTimer is not None:
            self._hide_timer = QTimer()
            self._hide_timer.setSingleShot(True)
            self._hide_timer.timeout.connect(lambda: self._transcript.setText(""))
            self._hide_timer.start(delay_ms)

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
