import logging
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from .constants import APP_NAME, MAINTENANCE_COMMAND, MAINTENANCE_STEPS

logger = logging.getLogger(APP_NAME)


@dataclass
class StepResult:
    """The outcome of a single maintenance step.

    Attributes:
        step (str): The step name (e.g. 'update').
        args (list[str]): The full command line that was run.
        returncode (int | None): Exit status, or None if the process never started.
        stdout (str): Captured standard output.
        stderr (str): Captured standard error.
    """

    step: str
    args: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _pump(stream: IO[str], level: int, prefix: str, sink: list[str]) -> None:
    """Forwards lines from a child pipe to the logger as they arrive."""
    with stream:
        for line in stream:
            sink.append(line)
            text = line.rstrip("\n")
            if text:
                logger.log(level, f"{prefix} {text}")


class PackageMaintenance:
    """Runs package-manager bookkeeping steps in a working directory.

    Steps run strictly in sequence. A step starts only after the previous
    process has exited, whatever its exit status. Failures are logged and
    reported in the results, never raised.

    Attributes:
        command (str): The package manager executable.
        steps (list[str]): Sub-commands to run, each split on whitespace.
    """

    def __init__(
        self,
        command: str = MAINTENANCE_COMMAND,
        steps: list[str] | None = None,
    ):
        self.command = command
        self.steps = list(MAINTENANCE_STEPS if steps is None else steps)

    def run(self, working_dir: Path) -> list[StepResult]:
        """Runs every step in `working_dir`.

        Args:
            working_dir (Path): The directory the steps run in.

        Returns:
            list[StepResult]: One result per step, in execution order.
        """
        return [self.run_step(step, working_dir) for step in self.steps]

    def run_step(self, step: str, working_dir: Path) -> StepResult:
        """Runs one step, streaming stdout to INFO and stderr to WARNING."""
        args = [self.command, *step.split()]
        prefix = f"[{self.command} {step}]"
        logger.info(f"MAINTENANCE: {' '.join(args)} in {working_dir}")

        try:
            proc = subprocess.Popen(
                args,
                cwd=working_dir,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            logger.error(f"MAINTENANCE ERROR {prefix}: {e}")
            return StepResult(step, args, None, stderr=str(e))

        out_lines: list[str] = []
        err_lines: list[str] = []
        pumps = [
            threading.Thread(
                target=_pump,
                args=(proc.stdout, logging.INFO, prefix, out_lines),
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(proc.stderr, logging.WARNING, prefix, err_lines),
                daemon=True,
            ),
        ]
        for t in pumps:
            t.start()
        returncode = proc.wait()
        for t in pumps:
            t.join()

        if returncode != 0:
            logger.warning(f"MAINTENANCE {prefix}: exited with code {returncode}")

        return StepResult(
            step, args, returncode, stdout="".join(out_lines), stderr="".join(err_lines)
        )
