import logging
import os
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .constants import APP_NAME, WATCHED_EVENTS

logger = logging.getLogger(APP_NAME)

ChangeCallback = Callable[[str, str], None]


class _ForwardingHandler(FileSystemEventHandler):
    """Translates watchdog events into `(kind, relative_path)` notifications."""

    def __init__(self, root: Path, on_event: ChangeCallback):
        super().__init__()
        self.root = root
        self.on_event = on_event

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in WATCHED_EVENTS:
            return

        src_path = os.fsdecode(event.src_path)
        try:
            rel = os.path.relpath(src_path, self.root)
        except ValueError:
            # Different drive on Windows; report the raw path.
            rel = src_path

        try:
            self.on_event(event.event_type, rel)
        except Exception:
            # Keep the observer thread alive; the callback owner decides what failed.
            logger.exception(f"WATCH ERROR: callback failed for {event.event_type} {rel}")


class WatchHandle:
    """A live subscription to filesystem changes under a root directory.

    Attributes:
        root (Path): The watched directory.
    """

    def __init__(self, root: Path, observer: Observer):
        self.root = root
        self._observer = observer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, timeout: float = 10) -> None:
        """Stops the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._observer.stop()
        self._observer.join(timeout=timeout)
        logger.debug(f"WATCH: stopped {self.root}")

    def __enter__(self) -> "WatchHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class ChangeWatcher:
    """Emits a notification for every create/modify/delete/move under a tree.

    Backed by a recursive watchdog observer running on its own thread.
    """

    def __init__(self, observer_factory: Callable[[], Observer] = Observer):
        self._observer_factory = observer_factory

    def subscribe(self, root: Path, on_event: ChangeCallback) -> WatchHandle:
        """Starts watching `root` recursively.

        Args:
            root (Path): The directory to watch.
            on_event (ChangeCallback): Called as `on_event(kind, relative_path)`.

        Returns:
            WatchHandle: The handle that owns the subscription.
        """
        observer = self._observer_factory()
        observer.schedule(_ForwardingHandler(root, on_event), str(root), recursive=True)
        observer.daemon = True
        observer.start()
        logger.debug(f"WATCH: started {root}")
        return WatchHandle(root, observer)
