"""Events consumed by the session controller.

Every input to the state machine, whether it comes from a capability thread,
a timer or the tray menu, is one of these frozen dataclasses and goes through
``OverlaySessionController.dispatch``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from timers import TimerToken


@dataclass(frozen=True)
class WakeDetected:
    keyword_index: int = 0
    manual: bool = False


@dataclass(frozen=True)
class ManualToggle:
    pass


@dataclass(frozen=True)
class HideRequested:
    reason: str = "requested"


@dataclass(frozen=True)
class StartupGraceElapsed:
    token: TimerToken


@dataclass(frozen=True)
class EngineStarted:
    pass


@dataclass(frozen=True)
class Fragment:
    text: str
    is_final: bool


@dataclass(frozen=True)
class EngineError:
    kind: str
    code: str = ""
    message: str = ""


@dataclass(frozen=True)
class EngineEnded:
    pass


@dataclass(frozen=True)
class InactivityTimeout:
    token: TimerToken


@dataclass(frozen=True)
class ReconnectDue:
    token: TimerToken


@dataclass(frozen=True)
class ResizeDebounceFired:
    token: TimerToken


@dataclass(frozen=True)
class ResizeCooldownElapsed:
    token: TimerToken


@dataclass(frozen=True)
class CapabilityResult:
    command: str
    success: bool
    reason: str = "ok"


@dataclass(frozen=True)
class WindowShown:
    pass


@dataclass(frozen=True)
class WindowHidden:
    pass


@dataclass(frozen=True)
class PointerHover:
    inside: bool


SessionEvent = Union[
    WakeDetected,
    ManualToggle,
    HideRequested,
    StartupGraceElapsed,
    EngineStarted,
    Fragment,
    EngineError,
    EngineEnded,
    InactivityTimeout,
    ReconnectDue,
    ResizeDebounceFired,
    ResizeCooldownElapsed,
    CapabilityResult,
    WindowShown,
    WindowHidden,
    PointerHover,
]
