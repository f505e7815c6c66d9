"""Tests for BackgroundTask, ChangeWatcher and AutoSaver.

Unit tests drive the watcher with a mocked observer; the integration tests at
the end use a real watchdog observer on a temporary directory.
"""

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import VERSION, SampleConfig
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from cfgkeeper.core.config import (
    AutoSaver,
    BackgroundTask,
    ChangeWatcher,
    ConfigFileEventHandler,
    ConfigMetadata,
    ConfigStore,
    WatcherSettings,
)

WAIT_TIMEOUT = 10.0


def _wait_until(predicate: Callable[[], bool], timeout: float = WAIT_TIMEOUT) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


# =============================================================================
# Test: BackgroundTask
# =============================================================================


class _Sleeper(BackgroundTask):
    def __init__(self) -> None:
        super().__init__(name="test-sleeper")
        self.iterations = 0

    def run(self) -> None:
        while not self._stop_event.wait(0.01):
            self.iterations += 1


class _Crasher(BackgroundTask):
    def run(self) -> None:
        raise RuntimeError("boom")


class TestBackgroundTask:
    """Tests for the thread lifecycle base class."""

    def test_start_stop(self) -> None:
        task = _Sleeper()
        task.start()
        assert task.is_running
        assert _wait_until(lambda: task.iterations > 0)

        task.stop()

        assert not task.is_running
        assert task.stop_requested

    def test_start_is_idempotent(self) -> None:
        task = _Sleeper()
        task.start()
        thread = task._thread
        task.start()
        assert task._thread is thread
        task.stop()

    def test_stop_without_start(self) -> None:
        task = _Sleeper()
        task.stop()
        task.stop()
        assert not task.is_running

    def test_restart_after_stop(self) -> None:
        task = _Sleeper()
        task.start()
        task.stop()
        task.start()
        assert task.is_running
        assert not task.stop_requested
        task.stop()

    def test_crash_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """An exception escaping run() is logged, not propagated."""
        task = _Crasher(name="test-crasher")
        with caplog.at_level(logging.ERROR):
            task.start()
            assert _wait_until(lambda: not task.is_running)
        assert "test-crasher stopped unexpectedly" in caplog.text


# =============================================================================
# Test: Event Handler
# =============================================================================


class TestConfigFileEventHandler:
    """Tests for filtering watchdog events down to the config file."""

    @pytest.fixture
    def notify(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def handler(self, notify: MagicMock) -> ConfigFileEventHandler:
        return ConfigFileEventHandler("config.jsonc", notify)

    def test_modified_config_file_notifies(
        self, handler: ConfigFileEventHandler, notify: MagicMock
    ) -> None:
        handler.dispatch(FileModifiedEvent("/cfg/test/config.jsonc"))
        notify.assert_called_once()

    def test_created_config_file_notifies(
        self, handler: ConfigFileEventHandler, notify: MagicMock
    ) -> None:
        handler.dispatch(FileCreatedEvent("/cfg/test/config.jsonc"))
        notify.assert_called_once()

    def test_atomic_rename_onto_config_notifies(
        self, handler: ConfigFileEventHandler, notify: MagicMock
    ) -> None:
        """A temp file moved onto the config (atomic save) counts as a change."""
        handler.dispatch(
            FileMovedEvent("/cfg/test/.config.jsonc.tmp.1", "/cfg/test/config.jsonc")
        )
        notify.assert_called_once()

    def test_other_files_ignored(
        self, handler: ConfigFileEventHandler, notify: MagicMock
    ) -> None:
        handler.dispatch(FileModifiedEvent("/cfg/test/other.jsonc"))
        handler.dispatch(FileModifiedEvent("/cfg/test/.config.jsonc.tmp.1"))
        handler.dispatch(FileMovedEvent("/cfg/test/config.jsonc", "/cfg/test/renamed.jsonc"))
        notify.assert_not_called()

    def test_directory_events_ignored(
        self, handler: ConfigFileEventHandler, notify: MagicMock
    ) -> None:
        handler.dispatch(DirModifiedEvent("/cfg/test/config.jsonc"))
        notify.assert_not_called()


# =============================================================================
# Test: ChangeWatcher
# =============================================================================


class TestChangeWatcher:
    """Tests for ChangeWatcher with a mocked observer."""

    def _watcher(
        self,
        tmp_path: Path,
        has_changed: Callable[[], bool],
        on_change: Callable[[], None],
        observer: MagicMock | None = None,
        debounce: float = 0.0,
    ) -> ChangeWatcher:
        observer = observer or MagicMock()
        return ChangeWatcher(
            tmp_path / "config.jsonc",
            has_changed=has_changed,
            on_change=on_change,
            debounce_seconds=debounce,
            observer_factory=lambda: observer,
        )

    def test_schedules_parent_directory(self, tmp_path: Path) -> None:
        """The observer watches the config directory non-recursively."""
        observer = MagicMock()
        watcher = self._watcher(tmp_path, lambda: False, lambda: None, observer)
        watcher.start()
        assert _wait_until(lambda: observer.start.called)
        watcher.stop()

        args, kwargs = observer.schedule.call_args
        assert args[1] == str(tmp_path)
        assert kwargs == {"recursive": False}
        observer.stop.assert_called_once()
        observer.join.assert_called_once()

    def test_checks_once_at_startup(self, tmp_path: Path) -> None:
        """A change made before the observer started is still picked up."""
        reloaded = threading.Event()
        watcher = self._watcher(tmp_path, lambda: True, reloaded.set)
        watcher.start()

        assert reloaded.wait(WAIT_TIMEOUT)
        watcher.stop()

    def test_notify_triggers_reload_when_changed(self, tmp_path: Path) -> None:
        changed = threading.Event()
        reloaded = threading.Event()
        watcher = self._watcher(tmp_path, changed.is_set, reloaded.set)
        watcher.start()

        changed.set()
        watcher.notify()

        assert reloaded.wait(WAIT_TIMEOUT)
        watcher.stop()

    def test_unchanged_fingerprint_skips_reload(self, tmp_path: Path) -> None:
        checks: list[int] = []
        on_change = MagicMock()

        def has_changed() -> bool:
            checks.append(1)
            return False

        watcher = self._watcher(tmp_path, has_changed, on_change)
        watcher.start()
        assert _wait_until(lambda: len(checks) == 1)
        watcher.notify()

        assert _wait_until(lambda: len(checks) == 2)
        watcher.stop()
        on_change.assert_not_called()

    def test_burst_of_events_coalesces(self, tmp_path: Path) -> None:
        """Several events inside the debounce window yield one check."""
        checks: list[int] = []

        def has_changed() -> bool:
            checks.append(1)
            return False

        watcher = self._watcher(tmp_path, has_changed, lambda: None, debounce=0.3)
        watcher.start()
        assert _wait_until(lambda: len(checks) == 1)

        for _ in range(5):
            watcher.notify()
            time.sleep(0.01)

        assert _wait_until(lambda: len(checks) >= 2)
        time.sleep(0.5)
        watcher.stop()
        assert len(checks) == 2

    def test_stop_during_debounce_skips_check(self, tmp_path: Path) -> None:
        has_changed = MagicMock(return_value=False)
        watcher = self._watcher(tmp_path, has_changed, lambda: None, debounce=30.0)
        watcher.start()
        assert _wait_until(lambda: has_changed.call_count == 1)
        watcher.notify()
        time.sleep(0.05)

        watcher.stop()

        assert has_changed.call_count == 1

    def test_callback_failure_keeps_watching(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An exception from the reload callback is logged and the loop continues."""
        attempts: list[int] = []

        def on_change() -> None:
            attempts.append(1)
            raise RuntimeError("reload exploded")

        watcher = self._watcher(tmp_path, lambda: True, on_change)
        with caplog.at_level(logging.ERROR):
            watcher.start()
            assert _wait_until(lambda: len(attempts) >= 1)
            watcher.notify()
            assert _wait_until(lambda: len(attempts) >= 2)
            watcher.stop()

        assert "reload exploded" in caplog.text

    def test_observer_failure_stops_watcher(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """An observer that cannot start ends the watcher with a log entry."""
        observer = MagicMock()
        observer.start.side_effect = OSError("inotify limit reached")
        watcher = self._watcher(tmp_path, lambda: False, lambda: None, observer)

        with caplog.at_level(logging.ERROR):
            watcher.start()
            assert _wait_until(lambda: not watcher.is_running)

        assert "Config watcher stopped" in caplog.text


# =============================================================================
# Test: AutoSaver
# =============================================================================


class TestAutoSaver:
    """Tests for periodic saving."""

    def test_saves_when_dirty(self) -> None:
        saved = threading.Event()
        saver = AutoSaver(lambda: True, saved.set, interval_seconds=0.01)
        saver.start()
        assert saved.wait(WAIT_TIMEOUT)
        saver.stop()

    def test_skips_when_clean(self) -> None:
        checked = threading.Event()
        save = MagicMock()

        def has_unsaved() -> bool:
            checked.set()
            return False

        saver = AutoSaver(has_unsaved, save, interval_seconds=0.01)
        saver.start()
        assert checked.wait(WAIT_TIMEOUT)
        saver.stop()
        save.assert_not_called()

    def test_failed_iteration_does_not_stop_loop(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        attempts: list[int] = []

        def save() -> None:
            attempts.append(1)
            raise OSError("disk gone")

        saver = AutoSaver(lambda: True, save, interval_seconds=0.01)
        with caplog.at_level(logging.ERROR):
            saver.start()
            assert _wait_until(lambda: len(attempts) >= 3)
            saver.stop()
        assert "Autosave iteration failed" in caplog.text


# =============================================================================
# Test: Integration with ConfigStore
# =============================================================================


class TestStoreBackgroundIntegration:
    """End-to-end tests with a real observer and timer."""

    def test_external_edit_reloaded_by_watcher(
        self,
        config_dir: Path,
        default_config: SampleConfig,
        rewrite: Callable[[Path, str], None],
    ) -> None:
        """Saving the file from outside updates the live config after the debounce."""
        metadata = ConfigMetadata(watcher_settings=WatcherSettings(enabled=True, debounce_ms=50))
        with ConfigStore(VERSION, default_config, config_dir, metadata) as store:
            content = store.config_file.read_text(encoding="utf-8")
            rewrite(store.config_file, content.replace('"default"', '"watched"'))

            assert _wait_until(lambda: store.get_current_config().test_setting == "watched")

    def test_in_memory_edit_persisted_by_autosave(
        self, config_dir: Path, default_config: SampleConfig
    ) -> None:
        """Mutating the live config reaches disk without an explicit save."""
        metadata = ConfigMetadata(
            watcher_settings=WatcherSettings(auto_save_enabled=True, auto_save_interval_ms=50)
        )
        with ConfigStore(VERSION, default_config, config_dir, metadata) as store:
            store.get_current_config().test_setting = "autosaved"

            assert _wait_until(lambda: not store.has_unsaved_changes())
            assert '"autosaved"' in store.config_file.read_text(encoding="utf-8")
