from __future__ import annotations

from unittest.mock import MagicMock, patch

from models import MicPermission
from permissions import SoundDevicePermissionProvider


def test_initial_state_is_prompt() -> None:
    assert SoundDevicePermissionProvider().query() == MicPermission.PROMPT


@patch("permissions.sd")
def test_request_grants_when_input_opens(mock_sd: MagicMock) -> None:
    provider = SoundDevicePermissionProvider(device=2)
    seen: list[MicPermission] = []
    provider.subscribe(seen.append)

    assert provider.request() == MicPermission.GRANTED
    assert provider.query() == MicPermission.GRANTED
    assert mock_sd.check_input_settings.call_args.kwargs["device"] == 2

    provider.request()
    assert seen == [MicPermission.GRANTED]


@patch("permissions.sd")
def test_request_denied_when_input_fails(mock_sd: MagicMock) -> None:
    mock_sd.check_input_settings.side_effect = Exception("Invalid input device")
    provider = SoundDevicePermissionProvider()

    assert provider.request() == MicPermission.DENIED


@patch("permissions.sd", None)
def test_request_denied_without_sounddevice() -> None:
    assert SoundDevicePermissionProvider().request() == MicPermission.DENIED


@patch("permissions.sd")
def test_reset_returns_to_prompt(mock_sd: MagicMock) -> None:
    provider = SoundDevicePermissionProvider()
    seen: list[MicPermission] = []
    provider.subscribe(seen.append)

    provider.request()
    provider.reset()

    assert provider.query() == MicPermission.PROMPT
    assert seen == [MicPermission.GRANTED, MicPermission.PROMPT]


@patch("permissions.sd")
def test_failing_subscriber_does_not_break_others(mock_sd: MagicMock) -> None:
    provider = SoundDevicePermissionProvider()
    seen: list[MicPermission] = []

    def broken(permission: MicPermission) -> None:
        raise RuntimeError("boom")

    provider.subscribe(broken)
    provider.subscribe(seen.append)
    provider.request()

    assert seen == [MicPermission.GRANTED]
