"""Application entrypoint."""

from __future__ import annotations

import logging
import sys

from config import JsonConfigStore
from errors import WAKE_WORD_UNAVAILABLE, message_for
from events import HideRequested, ManualToggle, PointerHover, SessionEvent, WakeDetected, WindowHidden, WindowShown
from hotkey import ActivationHotkey
from interfaces import ConfigStore
from models import SessionStatus
from overlay import OverlayWindow, QtWindowControl
from recognizer import DashscopeSpeechEngine
from recorder import MicrophoneHub
from session_controller import OverlaySessionController
from timers import QtTimerBackend, TimerService
from wake_word import OpenWakeWordWatcher

try:
    from PySide6.QtCore import QObject, QSize, Qt, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

APP_NAME = "Jackson Assistant"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"      # grey
ICON_LISTENING = "#FF4444"  # red
ICON_ERROR = "#FF8800"     # orange


class UIBridge(QObject):
    # Worker threads emit, the GUI thread receives.
    event_signal = Signal(object)


class App:
    def __init__(self, config_store: ConfigStore) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = config_store
        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.event_signal.connect(self._on_event_ui, Qt.QueuedConnection)

        self.microphone = MicrophoneHub()
        self.speech_engine = DashscopeSpeechEngine(
            self.microphone, api_key=config_store.get_api_key()
        )
        self.wake_word = OpenWakeWordWatcher(
            self.microphone,
            model=config_store.get_wake_word_model(),
            threshold=config_store.get_wake_word_threshold(),
        )
        self.controller = OverlaySessionController(
            speech_engine=self.speech_engine,
            window=QtWindowControl(self.overlay),
            timers=TimerService(QtTimerBackend()),
            wake_word=self.wake_word,
            policy=config_store.get_policy(),
            post=self.ui.event_signal.emit,
            on_state_change=self._on_state_change,
            on_display=self.overlay.set_speech,
            on_status=self._on_status,
            on_error=self._on_error,
        )
        self.overlay.on_visibility = self._on_overlay_visibility
        self.overlay.on_hover = lambda inside: self.controller.dispatch(PointerHover(inside))
        self.hotkey = ActivationHotkey(hotkey_name=config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip(APP_NAME)
        self.tray.activated.connect(self._on_tray_activated)
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        listen_action = QAction("Listen Now", menu)
        listen_action.triggered.connect(lambda: self.controller.dispatch(WakeDetected(manual=True)))
        menu.addAction(listen_action)

        hide_action = QAction("Hide", menu)
        hide_action.triggered.connect(lambda: self.controller.dispatch(HideRequested("tray")))
        menu.addAction(hide_action)

        menu.addSeparator()
        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        # Picked up by the next recognition run
        self.speech_engine.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved and applied.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Hotkey", "Use pynput key format, e.g. Key.f9"
        )
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # GUI thread handlers
    # ------------------------------------------------------------------

    def _on_event_ui(self, event: SessionEvent) -> None:
        self.controller.dispatch(event)

    def _on_overlay_visibility(self, visible: bool) -> None:
        self.controller.dispatch(WindowShown() if visible else WindowHidden())

    def _on_tray_activated(self, reason: QSystemTrayIcon.ActivationReason) -> None:
        if reason in (QSystemTrayIcon.Trigger, QSystemTrayIcon.DoubleClick):
            self.controller.dispatch(WakeDetected(manual=True))

    def _on_state_change(self, from_state: SessionStatus, to_state: SessionStatus) -> None:
        if to_state == SessionStatus.ARMED:
            self.tray.setIcon(_create_icon(ICON_LISTENING))
            self.tray.setToolTip(f"{APP_NAME}: Starting...")
        elif to_state == SessionStatus.LISTENING:
            self.tray.setToolTip(f"{APP_NAME}: Listening...")
        elif to_state == SessionStatus.IDLE:
            icon = ICON_ERROR if self.controller.session.initialization_error else ICON_IDLE
            self.tray.setIcon(_create_icon(icon))

    def _on_status(self, message: str, is_error: bool) -> None:
        self.tray.setToolTip(f"{APP_NAME}: {message}")
        self.overlay.set_status(message, is_error)
        if is_error:
            self.tray.setIcon(_create_icon(ICON_ERROR))

    def _on_error(self, code: str, message: str) -> None:
        if code == WAKE_WORD_UNAVAILABLE:
            self.tray.showMessage(APP_NAME, message_for(code), QSystemTrayIcon.Warning)

    # ------------------------------------------------------------------
    # Hotkey handler (pynput thread)
    # ------------------------------------------------------------------

    def _on_hotkey(self) -> None:
        self.ui.event_signal.emit(ManualToggle())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.controller.start()
        try:
            self.hotkey.start(on_activate=self._on_hotkey)
        except Exception as exc:
            logger.warning("Hotkey disabled: %s", exc)
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.shutdown()
        self.microphone.close()
        self.app.quit()


def main() -> int:
    config_store = JsonConfigStore()
    logging.basicConfig(
        level=getattr(logging, config_store.get_log_level(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App(config_store)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
