"""QTimer-backed scheduler for deferred citation and render steps."""

from typing import Callable

from PyQt6.QtCore import QObject, QTimer

from scheduling import Scheduler


class TimerCall:
    """Handle of one single-shot QTimer."""

    def __init__(self, timer: QTimer, callback: Callable[[], None]):
        self._timer = timer
        self._callback = callback
        self._finished = False
        timer.timeout.connect(self._fire)

    @property
    def active(self) -> bool:
        return not self._finished

    def _fire(self) -> None:
        if self._finished:
            return
        self._release()
        self._callback()

    def _release(self) -> None:
        self._finished = True
        self._timer.stop()
        self._timer.deleteLater()

    def cancel(self) -> None:
        if not self._finished:
            self._release()


class QtScheduler(Scheduler):
    """Runs callbacks on the Qt event loop of the parent's thread."""

    def __init__(self, parent: QObject = None):
        self.parent = parent

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerCall:
        timer = QTimer(self.parent)
        timer.setSingleShot(True)
        timer.setInterval(int(delay_ms))
        call = TimerCall(timer, callback)
        timer.start()
        return call
