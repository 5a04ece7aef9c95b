"""State-machine based session orchestration.

Idle -> Armed (wake word) -> Listening (speech engine up) -> Hidden -> Idle.
All inputs arrive as events through ``dispatch``; handlers run to completion
and events raised while a handler runs are queued behind it.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Optional

from errors import (
    ENGINE_ERROR,
    ENGINE_START_FAILED,
    PERMISSION_DENIED,
    WAKE_WORD_UNAVAILABLE,
    WINDOW_COMMAND_FAILED,
    message_for,
)
from events import (
    CapabilityResult,
    EngineEnded,
    EngineError,
    EngineStarted,
    Fragment,
    HideRequested,
    InactivityTimeout,
    ManualToggle,
    PointerHover,
    ReconnectDue,
    ResizeCooldownElapsed,
    ResizeDebounceFired,
    SessionEvent,
    StartupGraceElapsed,
    WakeDetected,
    WindowHidden,
    WindowShown,
)
from interfaces import SpeechEngine, WakeWordWatch, WindowControl
from models import (
    CommandResult,
    EngineErrorKind,
    OverlayPolicy,
    RecognitionEvent,
    RecognitionKind,
    Session,
    SessionStatus,
    Utterance,
)
from resize_policy import RESIZE_COMMAND, ResizePolicy
from timers import TimerService, TimerToken
from transcript import TranscriptAggregator

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionStatus, SessionStatus], None]
DisplayCallback = Callable[[str, bool], None]
StatusCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str, str], None]

INACTIVITY_TIMER = "inactivity"
GRACE_TIMER = "startup-grace"
RECONNECT_TIMER = "reconnect"

LISTENING_FOR_SPEECH = "Listening for speech..."

_ACTIVE = (SessionStatus.ARMED, SessionStatus.LISTENING)


class OverlaySessionController:
    def __init__(
        self,
        speech_engine: SpeechEngine,
        window: WindowControl,
        timers: TimerService,
        wake_word: Optional[WakeWordWatch] = None,
        policy: Optional[OverlayPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        post: Optional[Callable[[SessionEvent], None]] = None,
        on_state_change: Optional[StateCallback] = None,
        on_display: Optional[DisplayCallback] = None,
        on_status: Optional[StatusCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._speech_engine = speech_engine
        self._window = window
        self._timers = timers
        self._wake_word = wake_word
        self._policy = policy or OverlayPolicy()
        self._clock = clock
        # Capability threads deliver through ``post``; the app routes it
        # through a queued Qt signal so it lands on the GUI thread.
        self._post = post or self.dispatch
        self._on_state_change = on_state_change
        self._on_display = on_display
        self._on_status = on_status
        self._on_error = on_error

        self._session = Session()
        self._aggregator = TranscriptAggregator(
            stop_phrases=self._policy.stop_phrases,
            retain_transcript=self._policy.retain_transcript,
        )
        self._resize = ResizePolicy(
            timers=timers,
            window=window,
            post=self.dispatch,
            is_listening=lambda: self._session.status == SessionStatus.LISTENING,
            policy=self._policy,
        )

        self._inactivity_token: Optional[TimerToken] = None
        self._grace_token: Optional[TimerToken] = None
        self._reconnect_token: Optional[TimerToken] = None
        self._engine_active = False
        self._restarts_allowed = True
        self._wake_word_available = False

        self._queue: deque[SessionEvent] = deque()
        self._dispatching = False
        self._handlers: dict[type, Callable[..., None]] = {
            WakeDetected: self._handle_wake,
            ManualToggle: self._handle_manual_toggle,
            HideRequested: self._handle_hide_requested,
            StartupGraceElapsed: self._handle_startup_grace,
            EngineStarted: self._handle_engine_started,
            Fragment: self._handle_fragment,
            EngineError: self._handle_engine_error,
            EngineEnded: self._handle_engine_ended,
            InactivityTimeout: self._handle_inactivity,
            ReconnectDue: self._handle_reconnect,
            ResizeDebounceFired: self._handle_resize_debounce,
            ResizeCooldownElapsed: self._handle_resize_cooldown,
            CapabilityResult: self._handle_capability_result,
            WindowShown: self._handle_window_shown,
            WindowHidden: self._handle_window_hidden,
            PointerHover: self._handle_pointer_hover,
        }

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionStatus:
        return self._session.status

    @property
    def session(self) -> Session:
        return self._session

    @property
    def transcript(self) -> tuple[str, ...]:
        return self._aggregator.transcript

    @property
    def utterance(self) -> Utterance:
        return self._aggregator.utterance

    @property
    def resize_policy(self) -> ResizePolicy:
        return self._resize

    @property
    def restarts_allowed(self) -> bool:
        return self._restarts_allowed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._run_window_command("set_ignore_input", lambda: self._window.set_ignore_input(True))
        if self._wake_word is None:
            self._degrade_to_manual("no wake word backend configured")
            return
        try:
            self._wake_word.start(self._notify_wake)
        except Exception as exc:
            self._degrade_to_manual(str(exc))
            return
        self._wake_word_available = True
        self._session.initialization_error = False
        self._set_status(self._policy.wake_prompt)
        logger.info("Wake word detection started")

    def shutdown(self) -> None:
        if self._wake_word is not None and self._wake_word_available:
            try:
                self._wake_word.stop()
            except Exception:
                logger.exception("Stopping wake word detection failed")
            self._wake_word_available = False
        if self._session.status in _ACTIVE:
            self._enter_hidden("shutdown")
        self._timers.cancel_all()

    def dispatch(self, event: SessionEvent) -> None:
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                current = self._queue.popleft()
                handler = self._handlers.get(type(current))
                if handler is None:
                    logger.warning("No handler for event %r", current)
                    continue
                handler(current)
        finally:
            self._dispatching = False

    # ------------------------------------------------------------------
    # Capability callbacks (may run on worker threads)
    # ------------------------------------------------------------------

    def _notify_wake(self, keyword_index: int) -> None:
        self._post(WakeDetected(keyword_index=keyword_index))

    def _notify_recognition(self, event: RecognitionEvent) -> None:
        kind = event.kind
        if kind == RecognitionKind.STARTED.value:
            self._post(EngineStarted())
        elif kind == RecognitionKind.PARTIAL.value:
            self._post(Fragment(text=event.text, is_final=False))
        elif kind == RecognitionKind.FINAL.value:
            self._post(Fragment(text=event.text, is_final=True))
        elif kind == RecognitionKind.ERROR.value:
            self._post(
                EngineError(
                    kind=event.error_kind or EngineErrorKind.OTHER.value,
                    code=event.code,
                    message=event.message,
                )
            )
        elif kind == RecognitionKind.ENDED.value:
            self._post(EngineEnded())

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_wake(self, event: WakeDetected) -> None:
        session = self._session
        self._stop_engine()
        self._cancel_session_timers()
        self._aggregator.reset()
        self._resize.reset()
        self._restarts_allowed = True

        session.detection_count += 1
        session.last_activity_at = self._clock()
        if event.manual:
            logger.info("Manual activation (#%d)", session.detection_count)
        else:
            logger.info(
                'Wake word "%s" detected (#%d)',
                self._policy.keyword_name(event.keyword_index),
                session.detection_count,
            )
        self._transition(SessionStatus.ARMED)
        self._set_status(LISTENING_FOR_SPEECH)
        self._emit_display("", False)
        self._run_window_command("show", self._window.show)
        self._grace_token = self._timers.schedule(
            GRACE_TIMER,
            self._policy.startup_grace_ms,
            lambda token: self.dispatch(StartupGraceElapsed(token)),
        )

    def _handle_manual_toggle(self, event: ManualToggle) -> None:
        if self._session.status in _ACTIVE:
            self._enter_hidden("manual toggle")
        else:
            self._handle_wake(WakeDetected(manual=True))

    def _handle_hide_requested(self, event: HideRequested) -> None:
        if self._session.status in _ACTIVE:
            self._enter_hidden(event.reason)

    def _handle_startup_grace(self, event: StartupGraceElapsed) -> None:
        if event.token != self._grace_token or self._session.status != SessionStatus.ARMED:
            return
        self._grace_token = None
        self._start_engine()
        self._arm_inactivity()

    def _handle_engine_started(self, event: EngineStarted) -> None:
        if self._session.status == SessionStatus.ARMED:
            self._transition(SessionStatus.LISTENING)
            self._arm_inactivity()
        elif self._session.status == SessionStatus.LISTENING:
            logger.info("Speech recognition restarted")

    def _handle_fragment(self, event: Fragment) -> None:
        session = self._session
        if session.status not in _ACTIVE:
            logger.debug("Dropping fragment outside a session: %r", event.text)
            return
        update = self._aggregator.on_fragment(event.text, event.is_final)
        session.last_activity_at = self._clock()
        self._emit_display(update.text, update.is_finalizing)
        if update.finalized is not None:
            logger.info("Final speech: %s", update.finalized)
        if update.stop_requested:
            self._enter_hidden("stop phrase")
            return
        self._arm_inactivity()
        self._resize.on_content_change(update.text_length, update.is_finalizing)

    def _handle_engine_error(self, event: EngineError) -> None:
        if event.kind == EngineErrorKind.NO_SPEECH.value:
            logger.debug("No speech detected, still listening")
            return
        if event.kind == EngineErrorKind.NOT_ALLOWED.value:
            code = event.code or PERMISSION_DENIED
            logger.warning("Speech recognition not allowed: %s", event.message or code)
            self._restarts_allowed = False
            self._cancel_reconnect()
            self._session.initialization_error = True
            self._set_status(message_for(code), is_error=True)
            self._emit_error(code, event.message or message_for(code))
            return

        logger.warning("Speech recognition error: %s", event.message or event.code)
        self._emit_error(event.code or ENGINE_ERROR, event.message)
        if self._session.status in _ACTIVE and self._restarts_allowed:
            self._reconnect_token = self._timers.schedule(
                RECONNECT_TIMER,
                self._policy.reconnect_delay_ms,
                lambda token: self.dispatch(ReconnectDue(token)),
            )

    def _handle_engine_ended(self, event: EngineEnded) -> None:
        session = self._session
        restart = (
            session.status in _ACTIVE
            and self._restarts_allowed
            and session.window_visible
            and not self._timers.is_pending(self._reconnect_token)
        )
        if not restart:
            # Release the ended run so its trailing callbacks are dropped.
            self._stop_engine(force=True)
            return
        logger.info("Speech recognition ended, restarting")
        self._restart_engine()

    def _handle_reconnect(self, event: ReconnectDue) -> None:
        if event.token != self._reconnect_token:
            return
        self._reconnect_token = None
        if self._session.status not in _ACTIVE or not self._restarts_allowed:
            return
        logger.info("Reconnecting speech recognition")
        self._restart_engine()

    def _handle_inactivity(self, event: InactivityTimeout) -> None:
        if event.token != self._inactivity_token:
            return
        self._inactivity_token = None
        if self._session.status in _ACTIVE:
            logger.info(
                "No speech for %.1fs, hiding", self._policy.inactivity_timeout_ms / 1000
            )
            self._enter_hidden("inactivity")

    def _handle_resize_debounce(self, event: ResizeDebounceFired) -> None:
        self._resize.on_debounce_fired(event.token)

    def _handle_resize_cooldown(self, event: ResizeCooldownElapsed) -> None:
        self._resize.on_cooldown_elapsed(event.token)

    def _handle_capability_result(self, event: CapabilityResult) -> None:
        if event.command == RESIZE_COMMAND:
            self._resize.on_resize_result(event.success, event.reason)
            return
        if event.success:
            if event.command == "show":
                self._session.window_visible = True
            return
        logger.warning("Window command %s failed: %s", event.command, event.reason)
        self._emit_error(WINDOW_COMMAND_FAILED, f"{event.command}: {event.reason}")

    def _handle_window_shown(self, event: WindowShown) -> None:
        self._session.window_visible = True
        self._resize.release_guard()

    def _handle_window_hidden(self, event: WindowHidden) -> None:
        self._session.window_visible = False
        self._resize.release_guard()

    def _handle_pointer_hover(self, event: PointerHover) -> None:
        ignore = not event.inside
        self._run_window_command(
            "set_ignore_input", lambda: self._window.set_ignore_input(ignore)
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _enter_hidden(self, reason: str) -> None:
        logger.info("Hiding overlay (%s)", reason)
        self._stop_engine()
        self._cancel_session_timers()
        self._aggregator.reset()
        self._resize.reset()
        self._transition(SessionStatus.HIDDEN)
        self._emit_display("", False)
        self._run_window_command("hide", self._window.hide)
        self._session.window_visible = False
        self._transition(SessionStatus.IDLE)
        self._set_status(self._idle_status(), is_error=not self._wake_word_available)

    def _degrade_to_manual(self, reason: str) -> None:
        logger.warning("Wake word detection unavailable: %s", reason)
        self._wake_word_available = False
        self._session.initialization_error = True
        self._set_status(message_for(WAKE_WORD_UNAVAILABLE), is_error=True)
        self._emit_error(WAKE_WORD_UNAVAILABLE, reason)

    def _idle_status(self) -> str:
        if not self._wake_word_available:
            return message_for(WAKE_WORD_UNAVAILABLE)
        return self._policy.wake_prompt

    def _start_engine(self) -> bool:
        try:
            self._speech_engine.start(self._notify_recognition)
        except Exception as exc:
            logger.exception("Failed to start speech recognition")
            self._engine_active = False
            self._set_status(message_for(ENGINE_START_FAILED), is_error=True)
            self._emit_error(ENGINE_START_FAILED, str(exc))
            return False
        self._engine_active = True
        return True

    def _restart_engine(self) -> None:
        self._stop_engine(force=True)
        if not self._start_engine():
            self._restarts_allowed = False

    def _stop_engine(self, force: bool = False) -> None:
        if not (self._engine_active or force):
            return
        self._engine_active = False
        try:
            self._speech_engine.stop()
        except Exception:
            logger.exception("Failed to stop speech recognition")

    def _arm_inactivity(self) -> None:
        self._inactivity_token = self._timers.schedule(
            INACTIVITY_TIMER,
            self._policy.inactivity_timeout_ms,
            lambda token: self.dispatch(InactivityTimeout(token)),
        )

    def _cancel_reconnect(self) -> None:
        self._timers.cancel(self._reconnect_token)
        self._reconnect_token = None

    def _cancel_session_timers(self) -> None:
        self._timers.cancel(self._inactivity_token)
        self._timers.cancel(self._grace_token)
        self._cancel_reconnect()
        self._inactivity_token = None
        self._grace_token = None

    def _run_window_command(self, command: str, call: Callable[[], CommandResult]) -> None:
        try:
            result = call()
        except Exception as exc:
            result = CommandResult(success=False, reason=str(exc))
        self.dispatch(CapabilityResult(command, result.success, result.reason))

    def _set_status(self, message: str, is_error: bool = False) -> None:
        self._session.status_message = message
        if self._on_status:
            self._on_status(message, is_error)

    def _emit_display(self, text: str, is_finalizing: bool) -> None:
        if self._on_display:
            self._on_display(text, is_finalizing)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: SessionStatus) -> None:
        from_state = self._session.status
        if from_state == to_state:
            return
        self._session.status = to_state
        logger.debug("Session %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
