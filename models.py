"""Core data models for the overlay."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SessionStatus(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    LISTENING = "LISTENING"
    HIDDEN = "HIDDEN"


class RecognitionKind(str, Enum):
    STARTED = "started"
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    ENDED = "ended"


class EngineErrorKind(str, Enum):
    NO_SPEECH = "no-speech"
    NOT_ALLOWED = "not-allowed"
    OTHER = "other"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    error_kind: str = ""
    code: str = ""
    message: str = ""


@dataclass
class CommandResult:
    success: bool
    reason: str = "ok"


@dataclass(frozen=True)
class ContentExtent:
    width: int
    height: int


@dataclass(frozen=True)
class WindowSize:
    width: int
    height: int


@dataclass(frozen=True)
class ContentSnapshot:
    """What the surface was last sized for."""

    text_length: int = 0
    is_finalizing: bool = False


@dataclass
class Utterance:
    interim_text: str = ""
    is_finalizing: bool = False


@dataclass
class Session:
    status: SessionStatus = SessionStatus.IDLE
    detection_count: int = 0
    last_activity_at: float = 0.0
    initialization_error: bool = False
    status_message: str = ""
    window_visible: bool = False


DEFAULT_STOP_PHRASES = ("stop listening", "goodbye", "bye jackson")
DEFAULT_WAKE_KEYWORDS = ("Hey Jackson",)


@dataclass(frozen=True)
class OverlayPolicy:
    """Tunable timings and thresholds for the session and resize protocols."""

    inactivity_timeout_ms: int = 10_000
    startup_grace_ms: int = 500
    reconnect_delay_ms: int = 1_000
    resize_debounce_ms: int = 400
    resize_cooldown_ms: int = 400
    significant_chars: int = 25
    significant_ratio: float = 0.4
    min_width: int = 400
    max_width: int = 800
    min_height: int = 350
    max_height: int = 600
    content_padding: int = 48
    wide_text_threshold: int = 80
    wide_headroom: int = 120
    retain_transcript: bool = True
    stop_phrases: tuple[str, ...] = field(default=DEFAULT_STOP_PHRASES)
    wake_keywords: tuple[str, ...] = field(default=DEFAULT_WAKE_KEYWORDS)

    @property
    def wake_prompt(self) -> str:
        keyword = self.wake_keywords[0] if self.wake_keywords else "the wake word"
        return f'Listening for "{keyword}"...'

    def keyword_name(self, index: int) -> str:
        if 0 <= index < len(self.wake_keywords):
            return self.wake_keywords[index]
        return "Unknown"
