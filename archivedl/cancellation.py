"""
Cooperative cancellation shared by the scan, transfer and extraction stages.
"""

import threading

from .utils import debug, log_exception


class CancellationToken:
    """A one-shot abort signal.

    Stages poll ``cancelled`` between items and inside their chunk loops.
    Callbacks registered with ``on_cancel`` run once when ``cancel()`` is
    first called (used to close in-flight HTTP responses). A token cannot
    be re-armed; a new run takes a new token.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []

    @property
    def cancelled(self):
        return self._event.is_set()

    def wait(self, timeout):
        """Sleeps up to timeout seconds, waking early on cancel. Returns ``cancelled``."""
        return self._event.wait(timeout)

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        debug("cancellation requested")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                log_exception("cancel callback failed")

    def on_cancel(self, callback):
        """Registers callback; runs it immediately if already cancelled.

        Returns a function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._discard(callback)
        callback()
        return lambda: None

    def _discard(self, callback):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
