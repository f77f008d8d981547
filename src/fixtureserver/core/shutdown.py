"""
One-shot process termination signal.

A handler that wants the process to exit returns a response with
exit_code set. After that response is flushed, the connection loop calls
trigger(); the main thread is blocked in wait() and tears the server down.

    worker thread                         main thread
    ─────────────                         ───────────
    send_response(...)                    signal.wait()  ──┐
    conn.close()                                            │
    signal.trigger(0)  ───────────────────────────────────► │
                                          close listeners ◄─┘
                                          sys.exit(0)

Only the first trigger counts; later calls are ignored.
"""

import threading
from typing import Optional


class ShutdownSignal:

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._exit_code: Optional[int] = None

    def trigger(self, exit_code: int = 0) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._exit_code = exit_code
            self._event.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until triggered. Returns False on timeout."""
        return self._event.wait(timeout)

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def exit_code(self) -> Optional[int]:
        """The code passed to the first trigger(), None until then."""
        return self._exit_code
