"""File watcher that reloads a managed config after external edits.

A watchdog Observer is scheduled non-recursively on the config file's
directory. Events naming the config file (created, modified, or moved onto it
by an atomic save) wake the worker thread. It waits until no event has
arrived for a full debounce window, checks the size/mtime fingerprint, and
only then triggers a reload. One check also runs as soon as the observer starts.
"""

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from cfgkeeper.core.config.tasks import BackgroundTask

logger = logging.getLogger(__name__)


class ConfigFileEventHandler(FileSystemEventHandler):
    """Forward events that name the watched file to a callback."""

    def __init__(self, file_name: str, notify: Callable[[], None]) -> None:
        super().__init__()
        self.file_name = file_name
        self._notify = notify

    def _matches(self, path: str | bytes) -> bool:
        return bool(path) and Path(os.fsdecode(path)).name == self.file_name

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._notify()

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.dest_path):
            self._notify()


class ChangeWatcher(BackgroundTask):
    """Debounced reload trigger for one config file.

    Attributes:
        config_file: File being watched.
        debounce_seconds: Quiet period between an event and the fingerprint check.

    """

    def __init__(
        self,
        config_file: Path,
        has_changed: Callable[[], bool],
        on_change: Callable[[], None],
        debounce_seconds: float,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize the watcher.

        Args:
            config_file: File to watch.
            has_changed: Returns True if the file fingerprint differs from the
                last one the store observed.
            on_change: Called (on the worker thread) to reload the file.
            debounce_seconds: Debounce window.
            observer_factory: Builds the watchdog observer.

        """
        super().__init__(name=f"cfgkeeper-watcher-{config_file.parent.name}")
        self.config_file = config_file
        self.debounce_seconds = debounce_seconds
        self._has_changed = has_changed
        self._on_change = on_change
        self._observer_factory = observer_factory
        self._pending = threading.Event()

    def notify(self) -> None:
        """Mark the file as touched; called from the observer thread."""
        self._pending.set()

    def _wake(self) -> None:
        self._pending.set()

    def run(self) -> None:
        handler = ConfigFileEventHandler(self.config_file.name, self.notify)
        observer = self._observer_factory()
        try:
            observer.schedule(handler, str(self.config_file.parent), recursive=False)
            observer.start()
        except OSError as e:
            logger.error("Config watcher stopped: %s", e)
            return

        logger.info("Watching %s for changes", self.config_file)
        try:
            # Edits made before the observer was scheduled produce no event
            self._check()
            while not self._stop_event.is_set():
                self._pending.wait()
                if self._stop_event.is_set() or not self._settle():
                    break
                self._check()
        finally:
            observer.stop()
            observer.join()

    def _settle(self) -> bool:
        """Wait until no event arrived for a full debounce window.

        Returns:
            False if a stop was requested while waiting.

        """
        while True:
            self._pending.clear()
            if self._stop_event.wait(self.debounce_seconds):
                return False
            if not self._pending.is_set():
                return True

    def _check(self) -> None:
        try:
            if self._has_changed():
                logger.debug("Detected change in %s", self.config_file)
                self._on_change()
        except Exception:
            logger.exception("Config reload after file change failed")
