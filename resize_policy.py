"""Significance-gated, debounced window resizing.

Streaming dictation changes the text many times a second. A resize is only
scheduled when the content changed enough to matter, the schedule is
debounced, and after each resize command a cooldown has to pass before the
next one may start. Changes that arrive during a resize are kept (latest
wins) and re-evaluated when the cooldown elapses.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from events import CapabilityResult, ResizeCooldownElapsed, ResizeDebounceFired, SessionEvent
from interfaces import WindowControl
from models import CommandResult, ContentExtent, ContentSnapshot, OverlayPolicy, WindowSize
from timers import TimerService, TimerToken

logger = logging.getLogger(__name__)

RESIZE_COMMAND = "resize"
DEBOUNCE_TIMER = "resize-debounce"
COOLDOWN_TIMER = "resize-cooldown"

FALLBACK_WIDTH = 520


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def compute_target_size(
    extent: Optional[ContentExtent],
    text_length: int,
    policy: OverlayPolicy,
) -> WindowSize:
    """Window size for the measured content, clamped per axis.

    Without a measurement the window gets a fixed width and the minimum height.
    """
    if extent is None:
        width, height = FALLBACK_WIDTH, policy.min_height
    else:
        width = extent.width + policy.content_padding
        height = extent.height + policy.content_padding
    if text_length > policy.wide_text_threshold:
        width += policy.wide_headroom
    return WindowSize(
        width=_clamp(width, policy.min_width, policy.max_width),
        height=_clamp(height, policy.min_height, policy.max_height),
    )


def is_significant_change(
    last: ContentSnapshot,
    new: ContentSnapshot,
    policy: OverlayPolicy,
) -> bool:
    if new.is_finalizing != last.is_finalizing:
        return True
    if last.text_length == 0 and new.text_length > 0:
        return True
    diff = abs(new.text_length - last.text_length)
    if diff > policy.significant_chars:
        return True
    return last.text_length > 0 and diff / last.text_length > policy.significant_ratio


class ResizePolicy:
    def __init__(
        self,
        timers: TimerService,
        window: WindowControl,
        post: Callable[[SessionEvent], None],
        is_listening: Callable[[], bool],
        policy: Optional[OverlayPolicy] = None,
    ) -> None:
        self._timers = timers
        self._window = window
        self._post = post
        self._is_listening = is_listening
        self._policy = policy or OverlayPolicy()

        self._last_snapshot = ContentSnapshot()
        self._pending_snapshot: Optional[ContentSnapshot] = None
        self._deferred_snapshot: Optional[ContentSnapshot] = None
        self._debounce_token: Optional[TimerToken] = None
        self._cooldown_token: Optional[TimerToken] = None
        self._in_flight = False
        self.resize_count = 0

    @property
    def last_snapshot(self) -> ContentSnapshot:
        return self._last_snapshot

    @property
    def resize_in_flight(self) -> bool:
        return self._in_flight

    @property
    def pending_debounce_token(self) -> Optional[TimerToken]:
        return self._debounce_token

    @property
    def deferred_snapshot(self) -> Optional[ContentSnapshot]:
        return self._deferred_snapshot

    def on_content_change(self, text_length: int, is_finalizing: bool) -> bool:
        """Returns True when a debounced resize was (re)scheduled."""
        if not self._is_listening():
            return False
        snapshot = ContentSnapshot(text_length=text_length, is_finalizing=is_finalizing)
        if self._in_flight:
            self._deferred_snapshot = snapshot
            return False
        if not is_significant_change(self._last_snapshot, snapshot, self._policy):
            if self._debounce_token is not None:
                self._pending_snapshot = snapshot
            return False

        logger.debug("Content change %s is significant, scheduling resize", snapshot)
        self._pending_snapshot = snapshot
        self._debounce_token = self._timers.schedule(
            DEBOUNCE_TIMER,
            self._policy.resize_debounce_ms,
            lambda token: self._post(ResizeDebounceFired(token)),
        )
        return True

    def on_debounce_fired(self, token: TimerToken) -> None:
        if token != self._debounce_token:
            logger.debug("Dropping superseded resize request %s", token)
            return
        self._debounce_token = None
        snapshot = self._pending_snapshot
        self._pending_snapshot = None
        if snapshot is None or not self._is_listening():
            return

        self._in_flight = True
        self._last_snapshot = snapshot
        size = compute_target_size(
            self._measure(), snapshot.text_length, self._policy
        )
        logger.info("Resizing window to %dx%d", size.width, size.height)
        self.resize_count += 1
        result = self._invoke_resize(size)
        self._post(CapabilityResult(RESIZE_COMMAND, result.success, result.reason))

    def on_resize_result(self, success: bool, reason: str = "ok") -> None:
        if not self._in_flight:
            return
        if not success:
            logger.warning("Window resize failed: %s", reason)
        self._cooldown_token = self._timers.schedule(
            COOLDOWN_TIMER,
            self._policy.resize_cooldown_ms,
            lambda token: self._post(ResizeCooldownElapsed(token)),
        )

    def on_cooldown_elapsed(self, token: TimerToken) -> None:
        if token != self._cooldown_token:
            return
        self._cooldown_token = None
        self._in_flight = False
        deferred = self._deferred_snapshot
        self._deferred_snapshot = None
        if deferred is not None:
            self.on_content_change(deferred.text_length, deferred.is_finalizing)

    def release_guard(self) -> None:
        """Forget any in-flight resize without touching the content baseline."""
        self._timers.cancel(self._cooldown_token)
        self._timers.cancel(self._debounce_token)
        self._cooldown_token = None
        self._debounce_token = None
        self._pending_snapshot = None
        self._deferred_snapshot = None
        self._in_flight = False

    def reset(self) -> None:
        self.release_guard()
        self._last_snapshot = ContentSnapshot()

    def _measure(self) -> Optional[ContentExtent]:
        try:
            return self._window.measure_content()
        except Exception:
            logger.exception("Measuring overlay content failed")
            return None

    def _invoke_resize(self, size: WindowSize) -> CommandResult:
        try:
            return self._window.resize(size.width, size.height)
        except Exception as exc:
            return CommandResult(success=False, reason=str(exc))
