import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE
from .paths import resolve_path
from .scheduler import ConfigurationError, SyncScheduler

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)


def setup_logging(interactive: bool, config: Config | None = None) -> None:
    """Configures the logging subsystem.

    Calling this again replaces the handlers installed by the previous call.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr and
                            to a rotating log file in the state directory.
        config (Config | None, optional): Supplies the log size limit.
    """
    config = config or Config()
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        if getattr(handler, "_simple_deploy", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    stream_handler._simple_deploy = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        try:
            LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                LOG_FILE,
                maxBytes=config.limits.max_log_size,
                backupCount=5,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {LOG_FILE}: {e}")
            return
        file_handler.setFormatter(formatter)
        file_handler._simple_deploy = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)


def serve(
    source: str | Path | None,
    target: str | Path | None,
    interactive: bool = True,
    poll_interval: float = 0.5,
) -> int:
    """Mirrors `source` into `target` until interrupted.

    Args:
        source (str | Path | None): The directory to watch.
        target (str | Path | None): The directory to keep in sync.
        interactive (bool, optional): Log to stdout instead of the log file.
                                      Defaults to True.
        poll_interval (float, optional): Seconds between liveness checks of the
                                         main thread. Defaults to 0.5.

    Returns:
        int: A process exit code (0 on clean shutdown, 2 on configuration error).
    """
    config = Config.load(resolve_path(source) if source else None)
    setup_logging(interactive, config)

    try:
        scheduler = SyncScheduler(source, target, config)
    except ConfigurationError as e:
        err_console.print(f"[bold red]Config Error:[/bold red] {e}")
        return 2

    if not scheduler.source.is_dir():
        err_console.print(
            f"[bold red]Config Error:[/bold red] source is not a directory: "
            f"{scheduler.source}"
        )
        return 2

    if interactive:
        console.print(
            f"[bold blue]Watching[/bold blue] [cyan]{scheduler.source}[/cyan] "
            f"> [cyan]{scheduler.target}[/cyan] (Ctrl+C to stop)"
        )

    handle = scheduler.watch()
    try:
        while not handle.closed:
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        scheduler.stop()

    if interactive:
        console.print("[bold green]Stopped.[/bold green]")
    return 0
