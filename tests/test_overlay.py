from __future__ import annotations

from models import SessionState, VoiceStatus
from overlay import status_line


def test_status_line_for_idle_session() -> None:
    assert status_line(VoiceStatus()) == "Voice commands paused"


def test_status_line_shows_activity() -> None:
    status = VoiceStatus(
        recognition_state=SessionState.RUNNING,
        last_command="camera:start",
        is_processing_command=True,
        error_count=2,
    )

    assert status_line(status) == (
        'Listening for "Hey Vision"... | processing | last: camera:start | retry 2'
    )
