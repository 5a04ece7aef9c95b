"""Global activation hotkey based on pynput.

Used for manual operation: one press opens a session without the wake word,
the next press closes it.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore


class ActivationHotkey:
    def __init__(self, hotkey_name: str = "Key.f9") -> None:
        self._hotkey_name = hotkey_name
        self._listener: Optional[object] = None
        self._held = False
        self._lock = threading.Lock()

    def start(self, on_activate: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")

        def _on_press(key: object) -> None:
            if not self._matches(key):
                return
            # Auto-repeat delivers repeated presses while the key is held.
            with self._lock:
                if self._held:
                    return
                self._held = True
            on_activate()

        def _on_release(key: object) -> None:
            if not self._matches(key):
                return
            with self._lock:
                self._held = False

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None

    def _matches(self, key: object) -> bool:
        name = str(key)
        if name == self._hotkey_name:
            return True
        char = getattr(key, "char", None)
        return char is not None and char == self._hotkey_name
