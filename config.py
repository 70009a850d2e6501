"""JSON-based config store and the tunables of the voice pipeline."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HOTKEY = "Key.f8"


@dataclass
class VoiceConfig:
    wake_threshold: float = 0.65
    command_threshold: float = 0.7
    confidence_floor: float = 0.35
    duplicate_window: int = 3
    history_capacity: int = 10
    backoff_base_ms: int = 1000
    backoff_cap_ms: int = 10000
    max_consecutive_errors: int = 5
    restart_delay_ms: int = 1000
    inactivity_prompt_ms: int = 60000
    dispatch_cooldown_ms: int = 2000
    suggestion_floor: float = 0.4
    adaptive_learning: bool = True
    speech_repeat_window_s: float = 5.0

    @classmethod
    def from_dict(cls, data: object) -> "VoiceConfig":
        """Build from user JSON, keeping defaults for missing or ill-typed keys."""
        config = cls()
        if not isinstance(data, dict):
            return config
        for item in fields(cls):
            if item.name not in data:
                continue
            default = getattr(config, item.name)
            value = data[item.name]
            if isinstance(default, bool):
                if isinstance(value, bool):
                    setattr(config, item.name, value)
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                setattr(config, item.name, type(default)(value))
            else:
                logger.warning("Ignoring invalid config value %s=%r", item.name, value)
        return config

    def to_dict(self) -> dict:
        return asdict(self)


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "vision_voice" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        data = self._read_all()
        data["api_key"] = key
        self._write_all(data)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        data = self._read_all()
        data["hotkey"] = hotkey
        self._write_all(data)

    def get_voice_config(self) -> VoiceConfig:
        return VoiceConfig.from_dict(self._read_all().get("voice"))

    def set_voice_config(self, config: VoiceConfig) -> None:
        data = self._read_all()
        data["voice"] = config.to_dict()
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            logger.warning("Config file %s unreadable, using defaults", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
