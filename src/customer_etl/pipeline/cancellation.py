"""
Cooperative cancellation for pipeline runs.
"""

import threading


class CancellationToken:
    """
    One-shot cancellation flag shared by the threads of a run.

    The first reason given wins; later cancel() calls are no-ops.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancellation requested") -> bool:
        """
        Request cancellation.

        Returns:
            True if this call cancelled the token, False if it already was
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or the timeout passes; returns the flag."""
        return self._event.wait(timeout)
