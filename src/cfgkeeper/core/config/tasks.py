"""Cancellable background task base for the watcher and autosaver.

Each task owns one daemon thread and a threading.Event used for cooperative
cancellation. ``stop()`` sets the event and joins the thread, so once it
returns the task no longer touches the config store.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class BackgroundTask:
    """Base class for a restartable worker thread.

    Subclasses implement ``run()`` and poll ``self._stop_event`` (usually via
    ``self._stop_event.wait(seconds)``) at every suspension point.

    Attributes:
        name: Thread name, also used in log messages.

    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        """Start the worker thread. No-op if already running."""
        with self._state_lock:
            if self.is_running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_safely, name=self.name, daemon=True)
            self._thread.start()
        logger.debug("Started %s", self.name)

    def stop(self) -> None:
        """Request cancellation and wait for the worker to exit. Idempotent."""
        with self._state_lock:
            thread = self._thread
            self._stop_event.set()
            self._wake()
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()
            logger.debug("Stopped %s", self.name)

    def run(self) -> None:
        raise NotImplementedError

    def _wake(self) -> None:
        """Unblock ``run()`` if it waits on something other than the stop event."""

    def _run_safely(self) -> None:
        try:
            self.run()
        except Exception:
            logger.exception("%s stopped unexpectedly", self.name)
