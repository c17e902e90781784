"""External command execution.

This module provides the CommandRunner used by every stage that talks to
kubectl or to a cloud provider CLI. Only the exit code and the captured
output are ever inspected.
"""

import subprocess

from icecream import ic

from helmstate import console
from helmstate.exceptions import BinaryNotFoundError
from helmstate.models import CommandResult

_ERR_BINARY_NOT_FOUND = "{program} not found; please install {program} and ensure it's on PATH"


class CommandRunner:
    """Runs external programs synchronously and captures their output.

    Attributes:
        verbose: Whether command descriptions are echoed to the console.

    """

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    def run(
        self,
        program: str,
        args: list[str],
        *,
        description: str = "",
        sensitive: bool = False,
    ) -> CommandResult:
        """Run ``program`` with ``args`` and wait for it to exit.

        Args:
            program: The binary to execute.
            args: Arguments passed to the binary.
            description: Human readable description shown in verbose mode.
            sensitive: If True, the command line is not traced in debug output.

        Returns:
            CommandResult with the exit code and stripped stdout/stderr.

        Raises:
            BinaryNotFoundError: If ``program`` is not installed.

        """
        cmd: list[str] = [program, *args]
        if description:
            console.debug(description, verbose=self.verbose)
        if not sensitive:
            ic(cmd)

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as err:
            raise BinaryNotFoundError(_ERR_BINARY_NOT_FOUND.format(program=program)) from err

        result = CommandResult(
            exit_code=proc.returncode,
            stdout=(proc.stdout or "").strip(),
            stderr=(proc.stderr or "").strip(),
        )
        if not sensitive:
            ic(result)
        return result

    def __repr__(self) -> str:
        return f"CommandRunner(verbose={self.verbose!r})"
