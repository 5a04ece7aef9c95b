"""Overlay window showing the live transcript."""

from __future__ import annotations

from typing import Callable, Optional

from models import CommandResult, ContentExtent

try:
    from PySide6.QtCore import Qt, QTimer
    from PySide6.QtGui import QCursor
    from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QTimer = None  # type: ignore
    QCursor = None  # type: ignore
    QApplication = None  # type: ignore
    QLabel = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

BOTTOM_MARGIN_PX = 40
HOVER_POLL_MS = 100
TEXT_MAX_WIDTH_PX = 672

_PANEL_STYLE = (
    "color: white; font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,190); border-radius: 12px;"
)
_ERROR_STYLE = (
    "color: #FF6B6B; font-size: 18px; padding: 16px;"
    "background: rgba(0,0,0,210); border-radius: 12px;"
)


class OverlayWindow(QWidget):
    """Frameless translucent panel.

    While input-transparent the window receives no enter/leave events, so the
    pointer position is polled to report hover changes through ``on_hover``.
    """

    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setWindowFlags(
            Qt.WindowStaysOnTopHint | Qt.FramelessWindowHint | Qt.Tool
        )
        self.setAttribute(Qt.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WA_ShowWithoutActivating, True)

        self._status = QLabel("Listening")
        self._status.setAlignment(Qt.AlignCenter)
        self._status.setStyleSheet(_PANEL_STYLE)

        self._speech = QLabel("")
        self._speech.setWordWrap(True)
        self._speech.setAlignment(Qt.AlignCenter)
        self._speech.setMaximumWidth(TEXT_MAX_WIDTH_PX)
        self._speech.setStyleSheet(_PANEL_STYLE)
        self._speech.hide()

        layout = QVBoxLayout()
        layout.setContentsMargins(24, 24, 24, 24)
        layout.addWidget(self._status)
        layout.addWidget(self._speech)
        self.setLayout(layout)

        self.on_visibility: Optional[Callable[[bool], None]] = None
        self.on_hover: Optional[Callable[[bool], None]] = None
        self._pointer_inside = False
        self._hover_timer = QTimer(self)
        self._hover_timer.setInterval(HOVER_POLL_MS)
        self._hover_timer.timeout.connect(self._poll_pointer)

    def set_speech(self, text: str, is_finalizing: bool) -> None:
        self._status.setStyleSheet(_PANEL_STYLE)
        self._status.setText("Processing..." if is_finalizing else "Listening")
        self._speech.setText(text)
        self._speech.setVisible(bool(text))

    def set_status(self, text: str, is_error: bool = False) -> None:
        if not is_error:
            return
        self._status.setStyleSheet(_ERROR_STYLE)
        self._status.setText(f"⚠️ {text}")

    def content_extent(self) -> ContentExtent:
        """Size the content would take without the window constraining it."""
        hint = self.layout().sizeHint()
        margins = self.layout().contentsMargins()
        return ContentExtent(
            width=hint.width() - margins.left() - margins.right(),
            height=hint.height() - margins.top() - margins.bottom(),
        )

    def place_bottom_center(self) -> None:
        """Position the window centred, just above the bottom of the screen."""
        if QApplication is None:
            return
        screen = QApplication.primaryScreen()
        if screen is None:
            return
        geom = screen.availableGeometry()
        x = geom.x() + (geom.width() - self.width()) // 2
        y = geom.y() + geom.height() - self.height() - BOTTOM_MARGIN_PX
        self.move(x, y)

    def showEvent(self, event) -> None:  # noqa: ANN001, N802
        super().showEvent(event)
        self._hover_timer.start()
        if self.on_visibility:
            self.on_visibility(True)

    def hideEvent(self, event) -> None:  # noqa: ANN001, N802
        super().hideEvent(event)
        self._hover_timer.stop()
        if self.on_visibility:
            self.on_visibility(False)

    def _poll_pointer(self) -> None:
        inside = self.frameGeometry().contains(QCursor.pos())
        if inside == self._pointer_inside:
            return
        self._pointer_inside = inside
        if self.on_hover:
            self.on_hover(inside)


class QtWindowControl:
    """Window commands for the session controller, executed on the GUI thread."""

    def __init__(self, window: OverlayWindow) -> None:
        self._window = window

    def show(self) -> CommandResult:
        self._window.adjustSize()
        self._window.place_bottom_center()
        self._window.show()
        self._window.raise_()
        return CommandResult(success=True)

    def hide(self) -> CommandResult:
        self._window.hide()
        return CommandResult(success=True)

    def resize(self, width: int, height: int) -> CommandResult:
        if not self._window.isVisible():
            return CommandResult(success=False, reason="window is not visible")
        screen = QApplication.primaryScreen() if QApplication is not None else None
        if screen is not None:
            height = min(height, int(screen.availableGeometry().height() * 0.9))
        self._window.resize(width, height)
        self._window.place_bottom_center()
        return CommandResult(success=True)

    def set_ignore_input(self, ignore: bool) -> CommandResult:
        current = bool(self._window.windowFlags() & Qt.WindowTransparentForInput)
        if current == ignore:
            return CommandResult(success=True)
        visible = self._window.isVisible()
        # Changing window flags re-creates the native window, which hides and
        # re-shows it. The host never asked for that, so it is not reported.
        notify = self._window.on_visibility
        self._window.on_visibility = None
        try:
            self._window.setWindowFlag(Qt.WindowTransparentForInput, ignore)
            if visible:
                self._window.show()
                self._window.raise_()
        finally:
            self._window.on_visibility = notify
        return CommandResult(success=True)

    def measure_content(self) -> Optional[ContentExtent]:
        extent = self._window.content_extent()
        if extent.width <= 0 or extent.height <= 0:
            return None
        return extent
