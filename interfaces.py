"""Protocol interfaces used by OverlaySessionController."""

from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from models import CommandResult, ContentExtent, OverlayPolicy, RecognitionEvent


class TimerBackend(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class WakeWordWatch(Protocol):
    def start(self, on_detect: Callable[[int], None]) -> None: ...

    def stop(self) -> None: ...


class SpeechEngine(Protocol):
    def start(self, on_event: Callable[[RecognitionEvent], None]) -> None: ...

    def stop(self) -> None: ...


class WindowControl(Protocol):
    def show(self) -> CommandResult: ...

    def hide(self) -> CommandResult: ...

    def resize(self, width: int, height: int) -> CommandResult: ...

    def set_ignore_input(self, ignore: bool) -> CommandResult: ...

    def measure_content(self) -> Optional[ContentExtent]: ...


class ConfigStore(Protocol):
    def get_api_key(self) -> str: ...

    def set_api_key(self, key: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...

    def get_wake_word_model(self) -> str: ...

    def get_wake_word_threshold(self) -> float: ...

    def get_log_level(self) -> str: ...

    def get_policy(self) -> OverlayPolicy: ...
