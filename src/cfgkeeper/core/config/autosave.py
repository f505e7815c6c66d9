"""Periodic persistence of in-memory config edits."""

import logging
from collections.abc import Callable

from cfgkeeper.core.config.tasks import BackgroundTask

logger = logging.getLogger(__name__)


class AutoSaver(BackgroundTask):
    """Save the current config every interval if it differs from the last write.

    Lets callers mutate the live config object directly and have the change
    reach disk without an explicit save.
    """

    def __init__(
        self,
        has_unsaved_changes: Callable[[], bool],
        save_current: Callable[[], None],
        interval_seconds: float,
        name: str = "cfgkeeper-autosave",
    ) -> None:
        super().__init__(name=name)
        self.interval_seconds = interval_seconds
        self._has_unsaved_changes = has_unsaved_changes
        self._save_current = save_current

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                if self._has_unsaved_changes():
                    logger.debug("Autosaving unsaved config changes")
                    self._save_current()
            except Exception:
                logger.exception("Autosave iteration failed")
