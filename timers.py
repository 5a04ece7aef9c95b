"""Cancel-and-reset single-shot timers with token identity."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from interfaces import TimerBackend

try:
    from PySide6.QtCore import QTimer
except Exception:  # pragma: no cover
    QTimer = None  # type: ignore

logger = logging.getLogger(__name__)

TimerCallback = Callable[["TimerToken"], None]


@dataclass(frozen=True)
class TimerToken:
    name: str
    generation: int


class TimerService:
    """Named single-shot timers.

    Scheduling a name that already has an outstanding timer cancels it first.
    Each firing is checked against the token currently registered for its
    name, so a backend that fires a cancelled or superseded timer anyway
    produces no callback.
    """

    def __init__(self, backend: TimerBackend) -> None:
        self._backend = backend
        self._generations = itertools.count(1)
        self._pending: dict[str, tuple[TimerToken, Any]] = {}

    def schedule(self, name: str, delay_ms: int, callback: TimerCallback) -> TimerToken:
        self._cancel_name(name)
        token = TimerToken(name=name, generation=next(self._generations))
        handle = self._backend.call_later(
            max(0, int(delay_ms)), lambda: self._fire(token, callback)
        )
        self._pending[name] = (token, handle)
        return token

    def cancel(self, token: Optional[TimerToken]) -> None:
        if token is None:
            return
        entry = self._pending.get(token.name)
        if entry is None or entry[0] != token:
            return
        self._cancel_name(token.name)

    def cancel_all(self) -> None:
        for name in list(self._pending):
            self._cancel_name(name)

    def is_pending(self, token: Optional[TimerToken]) -> bool:
        if token is None:
            return False
        entry = self._pending.get(token.name)
        return entry is not None and entry[0] == token

    def _cancel_name(self, name: str) -> None:
        entry = self._pending.pop(name, None)
        if entry is not None:
            self._backend.cancel(entry[1])

    def _fire(self, token: TimerToken, callback: TimerCallback) -> None:
        if not self.is_pending(token):
            logger.debug("Ignoring stale timer %s#%d", token.name, token.generation)
            return
        del self._pending[token.name]
        callback(token)


class QtTimerBackend:
    """Runs callbacks on the Qt event loop of the calling thread."""

    def __init__(self) -> None:
        if QTimer is None:
            raise RuntimeError("PySide6 is not installed")
        self._timers: set[Any] = set()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        timer = QTimer()
        timer.setSingleShot(True)

        def _on_timeout() -> None:
            self._timers.discard(timer)
            callback()

        timer.timeout.connect(_on_timeout)
        self._timers.add(timer)
        timer.start(delay_ms)
        return timer

    def cancel(self, handle: Any) -> None:
        if handle in self._timers:
            handle.stop()
            self._timers.discard(handle)
