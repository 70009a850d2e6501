"""Microphone permission checks backed by sounddevice."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from models import MicPermission

logger = logging.getLogger(__name__)

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


class SoundDevicePermissionProvider:
    """Desktop stand-in for a browser microphone permission.

    ``Prompt`` means "not checked yet"; ``request()`` verifies that an input
    device can be opened with the capture settings and caches the outcome.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[int | str] = None,
    ) -> None:
        self._sample_rate = sample_rate
        self._channels = channels
        self._device = device
        self._permission = MicPermission.PROMPT
        self._subscribers: list[Callable[[MicPermission], None]] = []
        self._lock = threading.Lock()

    def query(self) -> MicPermission:
        return self._permission

    def request(self) -> MicPermission:
        if sd is None:
            logger.error("sounddevice is not installed, microphone unavailable")
            self._set(MicPermission.DENIED)
            return self._permission
        try:
            sd.check_input_settings(
                device=self._device,
                channels=self._channels,
                dtype="int16",
                samplerate=self._sample_rate,
            )
        except Exception as exc:
            logger.warning("Microphone not usable: %s", exc)
            self._set(MicPermission.DENIED)
        else:
            self._set(MicPermission.GRANTED)
        return self._permission

    def reset(self) -> None:
        """Forget the cached answer so the next start checks again."""
        self._set(MicPermission.PROMPT)

    def subscribe(self, callback: Callable[[MicPermission], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def _set(self, permission: MicPermission) -> None:
        with self._lock:
            if permission == self._permission:
                return
            self._permission = permission
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(permission)
            except Exception:
                logger.exception("Permission subscriber failed")
