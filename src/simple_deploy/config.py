import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_EXCLUDES,
    DELAY_BEFORE_MAINTENANCE,
    DELAY_BEFORE_SYNC,
    LOCAL_CONFIG_NAME,
    MAINTENANCE_COMMAND,
    MAINTENANCE_STEPS,
    PYPROJECT_SECTION,
    RSYNC_FLAGS,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_duration(value: int | float | str) -> float:
    """Converts human-readable durations (e.g., '50ms', '0.2s', '1m') to seconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration format '{value}'")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value}")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid duration format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"ms": 0.001, "s": 1, "sec": 1, "m": 60, "min": 60}
    return num * multiplier[unit]


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(s, str) for s in value)


@dataclass
class SchedulerConfig:
    """Debounce settings for the sync scheduler.

    Attributes:
        sync_delay (float): Seconds of quiet before a mirror runs.
        maintenance_delay (float): Seconds of quiet after a mirror before
            maintenance runs. Longer than `sync_delay` so that rapid successive
            syncs finish before maintenance starts.
    """

    sync_delay: float = DELAY_BEFORE_SYNC
    maintenance_delay: float = DELAY_BEFORE_MAINTENANCE


@dataclass
class MirrorConfig:
    """Mirror settings.

    Attributes:
        flags (str): Short rsync flags.
        exclude (list[str]): Exclude patterns (configured entries are appended to
            the defaults).
        delete (bool): Whether target entries missing from the source are removed.
    """

    flags: str = RSYNC_FLAGS
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDES))
    delete: bool = True


@dataclass
class MaintenanceConfig:
    """Dependency maintenance settings.

    Attributes:
        command (str): The package manager executable.
        steps (list[str]): Sub-commands run in order in the target directory.
        enabled (bool): Whether maintenance runs after a successful mirror.
    """

    command: str = MAINTENANCE_COMMAND
    steps: list[str] = field(default_factory=lambda: list(MAINTENANCE_STEPS))
    enabled: bool = True


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        scheduler (SchedulerConfig): Debounce windows.
        mirror (MirrorConfig): Mirror settings.
        maintenance (MaintenanceConfig): Maintenance settings.
        limits (LimitsConfig): Resource limits.
    """

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    mirror: MirrorConfig = field(default_factory=MirrorConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, source_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            source_path (Path | None): The source directory to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Copy every section so local merges never leak into the cache.
        cached = cls._global_cache
        instance = cls(
            scheduler=replace(cached.scheduler),
            mirror=replace(cached.mirror, exclude=list(cached.mirror.exclude)),
            maintenance=replace(cached.maintenance, steps=list(cached.maintenance.steps)),
            limits=replace(cached.limits),
        )

        # 2. Load Local Config (if applicable)
        if source_path:
            local_toml = source_path / LOCAL_CONFIG_NAME
            pyproject = source_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.simple-deploy').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "scheduler" in data:
                self.scheduler = self._update_dataclass(
                    "scheduler", self.scheduler, data["scheduler"]
                )
            if "mirror" in data:
                # Extract exclude list so it extends rather than replaces the defaults
                mirror_data = dict(data["mirror"])
                new_excludes = mirror_data.pop("exclude", [])
                self.mirror = self._update_dataclass("mirror", self.mirror, mirror_data)
                if not _is_str_list(new_excludes):
                    logger.warning(
                        "Config error in [mirror].exclude: Expected a list of strings. "
                        "Falling back to default."
                    )
                elif new_excludes:
                    self.mirror.exclude = list(
                        dict.fromkeys([*self.mirror.exclude, *new_excludes])
                    )
            if "maintenance" in data:
                self.maintenance = self._update_dataclass(
                    "maintenance", self.maintenance, data["maintenance"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["sync_delay", "maintenance_delay"]:
                    filtered_updates[k] = parse_duration(v)
                elif k == "steps":
                    if not _is_str_list(v):
                        raise ValueError("Expected a list of strings")
                    filtered_updates[k] = list(v)
                elif k in ["delete", "enabled"]:
                    if not isinstance(v, bool):
                        raise ValueError(f"Expected true or false, got {v!r}")
                    filtered_updates[k] = v
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
