import enum
import functools
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .config import Config
from .constants import APP_NAME
from .maintenance import PackageMaintenance, StepResult
from .mirror import RsyncMirror
from .paths import resolve_path
from .watcher import ChangeWatcher, WatchHandle

logger = logging.getLogger(APP_NAME)

TimerFactory = Callable[[float, Callable[[], None]], Any]


class ConfigurationError(ValueError):
    """Raised when a scheduler is constructed without a source or target."""


class Mirror(Protocol):
    def run(
        self, source: Path, target: Path, exclude: list[str] | None, delete: bool
    ) -> None: ...


class Maintenance(Protocol):
    def run(self, working_dir: Path) -> list[StepResult]: ...


class SyncState(enum.Enum):
    """Where a scheduler is in its mirror -> maintenance cycle."""

    IDLE = "idle"
    SYNCING = "syncing"
    PENDING_MAINTENANCE = "pending_maintenance"
    MAINTAINING = "maintaining"


class DebounceTimer:
    """A single-slot timer. Arming replaces any pending expiry (last write wins).

    The timer counts as pending from `arm()` until its callback has returned,
    and `on_done` (if given) runs after every callback.

    Attributes:
        name (str): Label used in log messages.
        delay (float): Seconds between arming and expiry.
    """

    def __init__(
        self,
        name: str,
        delay: float,
        callback: Callable[[], None],
        timer_factory: TimerFactory = threading.Timer,
        on_done: Callable[[], None] | None = None,
    ):
        self.name = name
        self.delay = delay
        self._callback = callback
        self._on_done = on_done
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._firing = 0
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None or self._firing > 0

    def arm(self) -> None:
        """Starts the timer, cancelling the one already pending."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = self._timer_factory(
                self.delay, functools.partial(self._expire, self._generation)
            )
            timer.daemon = True
            self._timer = timer
        logger.debug(f"TIMER {self.name}: armed for {self.delay}s")
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._generation += 1

    def _expire(self, generation: int) -> None:
        with self._lock:
            # A superseded timer can still fire if it was already running.
            if generation != self._generation:
                return
            self._timer = None
            self._firing += 1
        try:
            self._callback()
        finally:
            with self._lock:
                self._firing -= 1
            if self._on_done is not None:
                self._on_done()


class SyncScheduler:
    """Mirrors a source tree into a target and runs dependency maintenance there.

    Change notifications are coalesced through a short debounce window into a
    single mirror run. Each successful mirror arms a second, longer window
    after which maintenance runs in the target. At most one mirror and one
    maintenance pass are in flight at any time, and never both at once: a
    request that arrives while work is in flight re-arms its timer instead of
    queueing, so the next run picks up everything that changed meanwhile.

    Attributes:
        source (Path): The absolute source directory.
        target (Path): The absolute target directory.
        config (Config): The effective configuration.
    """

    def __init__(
        self,
        source: str | Path | None,
        target: str | Path | None,
        config: Config | None = None,
        *,
        mirror: Mirror | None = None,
        maintenance: Maintenance | None = None,
        watcher: ChangeWatcher | None = None,
        timer_factory: TimerFactory = threading.Timer,
    ):
        """Initializes the scheduler.

        Args:
            source (str | Path | None): The directory to watch and mirror from.
            target (str | Path | None): The directory to mirror into.
            config (Config | None, optional): Configuration. Defaults to the
                                              layered config of the source dir.
            mirror (Mirror | None, optional): Mirror operation. Defaults to rsync.
            maintenance (Maintenance | None, optional): Maintenance operation.
                                                        Defaults to npm steps.
            watcher (ChangeWatcher | None, optional): Filesystem change source.
            timer_factory (TimerFactory, optional): Creates debounce timers.

        Raises:
            ConfigurationError: If source or target is missing.
        """
        if not source or not target:
            raise ConfigurationError("source and destination are required.")

        logger.info(f'SimpleDeploy "{source}" > "{target}"')
        self.source = resolve_path(source)
        self.target = resolve_path(target)
        self.config = config if config is not None else Config.load(self.source)

        self.mirror = mirror or RsyncMirror(flags=self.config.mirror.flags)
        self.maintenance = maintenance or PackageMaintenance(
            command=self.config.maintenance.command,
            steps=self.config.maintenance.steps,
        )
        self.watcher = watcher or ChangeWatcher()

        self._state = SyncState.IDLE
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._handle: WatchHandle | None = None
        self._stopped = False

        self._sync_timer = DebounceTimer(
            "sync",
            self.config.scheduler.sync_delay,
            self._attempt_sync,
            timer_factory,
            on_done=self._notify,
        )
        self._maintenance_timer = DebounceTimer(
            "maintenance",
            self.config.scheduler.maintenance_delay,
            self._attempt_maintenance,
            timer_factory,
            on_done=self._notify,
        )

    # --- State probes ---

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def excludes(self) -> list[str]:
        return list(self.config.mirror.exclude)

    def is_processing(self) -> bool:
        """True from the moment a sync starts until its maintenance pass ends."""
        return self._state is not SyncState.IDLE

    def is_synchronizing(self) -> bool:
        return self._state is SyncState.SYNCING

    def is_updating_modules(self) -> bool:
        return self._state is SyncState.MAINTAINING

    def settled(self) -> bool:
        """True when idle with no sync or maintenance waiting on a timer."""
        with self._lock:
            return (
                self._state is SyncState.IDLE
                and not self._sync_timer.pending
                and not self._maintenance_timer.pending
            )

    def wait_settled(self, timeout: float | None = None) -> bool:
        """Blocks until the scheduler has settled.

        Args:
            timeout (float | None, optional): Max seconds to wait. None waits forever.

        Returns:
            bool: True if settled, False if the timeout expired first.
        """
        with self._changed:
            return self._changed.wait_for(self.settled, timeout=timeout)

    # --- Lifecycle ---

    def watch(self) -> WatchHandle:
        """Subscribes to source changes and kicks off the first sync.

        Returns immediately; all work happens on timer and watcher threads.

        Returns:
            WatchHandle: The subscription. Close it (or call `stop`) when done.
        """
        with self._lock:
            self._stopped = False
        self._handle = self.watcher.subscribe(self.source, self.on_change)
        self.on_change()
        return self._handle

    def stop(self) -> None:
        """Closes the subscription and drops pending timers.

        An operation that is already running finishes normally, but starts
        nothing after it: a mirror in flight does not arm maintenance, and
        late watcher events are ignored.
        """
        with self._lock:
            self._stopped = True
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        with self._lock:
            self._sync_timer.cancel()
            self._maintenance_timer.cancel()
            if self._state is SyncState.PENDING_MAINTENANCE:
                self._set_state(SyncState.IDLE)
            self._changed.notify_all()

    def on_change(self, kind: str | None = None, path: str | None = None) -> None:
        """Watcher callback: records the change and (re)arms the sync window."""
        if self._stopped:
            return
        if kind:
            logger.info(f"{kind} {path}")
        self._schedule_sync()

    # --- Transitions ---

    def _notify(self) -> None:
        with self._changed:
            self._changed.notify_all()

    def _set_state(self, state: SyncState) -> None:
        with self._lock:
            logger.debug(f"STATE: {self._state.value} -> {state.value}")
            self._state = state
            self._changed.notify_all()

    def _schedule_sync(self) -> None:
        self._sync_timer.arm()

    def _schedule_maintenance(self) -> None:
        self._maintenance_timer.arm()

    def _attempt_sync(self) -> None:
        with self._lock:
            if self._stopped:
                return
            if self._state is not SyncState.IDLE:
                # Busy: retry after another window instead of queueing.
                self._sync_timer.arm()
                return
            self._set_state(SyncState.SYNCING)

        try:
            self.mirror.run(
                self.source,
                self.target,
                exclude=self.excludes,
                delete=self.config.mirror.delete,
            )
        except Exception as e:
            logger.error(f"SYNC ERROR {self.source} > {self.target}: {e}")
            self._set_state(SyncState.IDLE)
            return

        logger.info(f"SYNCED {self.source} > {self.target}")
        with self._lock:
            if self._stopped or not self.config.maintenance.enabled:
                self._set_state(SyncState.IDLE)
                return
            self._set_state(SyncState.PENDING_MAINTENANCE)
            self._maintenance_timer.arm()

    def _attempt_maintenance(self) -> None:
        with self._lock:
            if self._stopped:
                return
            if self._state in (SyncState.SYNCING, SyncState.MAINTAINING):
                self._maintenance_timer.arm()
                return
            self._set_state(SyncState.MAINTAINING)

        try:
            results = self.maintenance.run(self.target)
            failed = [r.step for r in results if not r.ok]
            if failed:
                logger.warning(
                    f"MAINTENANCE {self.target}: failed steps: {', '.join(failed)}"
                )
        except Exception as e:
            logger.error(f"MAINTENANCE ERROR {self.target}: {e}")
        finally:
            self._set_state(SyncState.IDLE)
