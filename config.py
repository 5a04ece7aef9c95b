"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

from models import OverlayPolicy

logger = logging.getLogger(__name__)

DEFAULT_HOTKEY = "Key.f9"
DEFAULT_WAKE_WORD_MODEL = "hey_jarvis"
DEFAULT_WAKE_WORD_THRESHOLD = 0.5
DEFAULT_LOG_LEVEL = "INFO"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "jackson_overlay" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", ""))

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

    def get_wake_word_model(self) -> str:
        data = self._read_all()
        return str(data.get("wake_word_model", DEFAULT_WAKE_WORD_MODEL))

    def get_wake_word_threshold(self) -> float:
        data = self._read_all()
        try:
            return float(data.get("wake_word_threshold", DEFAULT_WAKE_WORD_THRESHOLD))
        except (TypeError, ValueError):
            return DEFAULT_WAKE_WORD_THRESHOLD

    def get_log_level(self) -> str:
        data = self._read_all()
        return str(data.get("log_level", DEFAULT_LOG_LEVEL)).upper()

    def get_policy(self) -> OverlayPolicy:
        """Defaults overridden by whatever valid keys the ``policy`` object holds."""
        raw = self._read_all().get("policy", {})
        policy = OverlayPolicy()
        if not isinstance(raw, dict):
            return policy
        overrides: dict[str, Any] = {}
        for f in fields(OverlayPolicy):
            if f.name not in raw:
                continue
            value = _coerce(raw[f.name], getattr(policy, f.name))
            if value is None:
                logger.warning("Ignoring invalid policy value %s=%r", f.name, raw[f.name])
                continue
            overrides[f.name] = value
        return replace(policy, **overrides)

    def set_policy(self, policy: OverlayPolicy) -> None:
        data = self._read_all()
        stored: dict[str, Any] = {}
        for f in fields(OverlayPolicy):
            value = getattr(policy, f.name)
            stored[f.name] = list(value) if isinstance(value, tuple) else value
        data["policy"] = stored
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def _coerce(value: Any, default: Any) -> Any:
    """Convert a JSON value to the type of ``default``; None when impossible."""
    if isinstance(default, bool):
        return value if isinstance(value, bool) else None
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return None
        return int(value)
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return None
        return float(value)
    if isinstance(default, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return None
        return tuple(value)
    return None
