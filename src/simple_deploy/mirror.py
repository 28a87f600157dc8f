import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, RSYNC_FLAGS

logger = logging.getLogger(APP_NAME)


class MirrorError(RuntimeError):
    """Raised when a mirror run fails.

    Attributes:
        returncode (int | None): The rsync exit status, or None if rsync never ran.
        stderr (str): Captured rsync error output.
    """

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class RsyncMirror:
    """One-way directory synchronization backed by the `rsync` binary.

    Attributes:
        flags (str): Short rsync flags, without the leading dash.
        executable (str): The rsync executable to invoke.
    """

    def __init__(self, flags: str = RSYNC_FLAGS, executable: str = "rsync"):
        self.flags = flags
        self.executable = executable

    def build_command(
        self,
        source: Path,
        target: Path,
        exclude: list[str] | None = None,
        delete: bool = True,
    ) -> list[str]:
        """Builds the rsync argument vector.

        The source gets a trailing separator so that its contents, not the
        directory itself, land in the target.

        Args:
            source (Path): The directory to mirror from.
            target (Path): The directory to mirror into.
            exclude (list[str] | None, optional): Patterns that are never transferred.
            delete (bool, optional): Whether to remove target entries missing from
                                     the source. Defaults to True.

        Returns:
            list[str]: The command line.
        """
        cmd = [self.executable]
        if self.flags:
            cmd.append(f"-{self.flags}")
        for pattern in exclude or []:
            cmd.append(f"--exclude={pattern}")
        if delete:
            cmd.append("--delete")
        cmd.append(os.path.join(str(source), ""))
        cmd.append(str(target))
        return cmd

    def run(
        self,
        source: Path,
        target: Path,
        exclude: list[str] | None = None,
        delete: bool = True,
    ) -> None:
        """Performs one full synchronization of `source` into `target`.

        Raises:
            MirrorError: If rsync is missing or exits with a non-zero status.
        """
        cmd = self.build_command(source, target, exclude=exclude, delete=delete)
        logger.debug(f"MIRROR: {' '.join(cmd)}")
        try:
            res = subprocess.run(cmd, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise MirrorError(f"Mirror error: {self.executable} not found") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise MirrorError(
                f"Mirror error: rsync exited with code {e.returncode}: {stderr or e}",
                returncode=e.returncode,
                stderr=stderr,
            ) from e

        for line in res.stdout.splitlines():
            if line.strip():
                logger.debug(f"MIRROR: {line}")
