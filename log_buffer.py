"""Bounded in-memory log store that the tray menu can export."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional


class LogBuffer(logging.Handler):
    """Keeps recent log lines as ``"<local time> - <message>"``.

    Once ``max_entries`` lines are held the oldest are dropped down to
    ``keep_entries``, so trimming happens in batches rather than per record.
    """

    def __init__(
        self,
        max_entries: int = 250,
        keep_entries: int = 200,
        level: int = logging.INFO,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(level=level)
        if keep_entries > max_entries:
            raise ValueError("keep_entries must not exceed max_entries")
        self._max_entries = max_entries
        self._keep_entries = keep_entries
        self._clock = clock
        self._entries: list[str] = []
        self._entries_lock = threading.Lock()
        self._logger: Optional[logging.Logger] = None

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self.add(f"{record.levelname} {record.name}: {message}")

    def add(self, entry: str) -> None:
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self._clock()))
        with self._entries_lock:
            self._entries.append(f"{stamp} - {entry}")
            if len(self._entries) > self._max_entries:
                del self._entries[: len(self._entries) - self._keep_entries]

    def entries(self) -> list[str]:
        with self._entries_lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()

    def export(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(self.entries()), encoding="utf-8")
        return path

    def attach(self, logger: Optional[logging.Logger] = None) -> None:
        self.detach()
        self._logger = logger or logging.getLogger()
        self._logger.addHandler(self)

    def detach(self) -> None:
        if self._logger is not None:
            self._logger.removeHandler(self)
            self._logger = None
