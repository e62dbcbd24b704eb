"""External command execution with live output capture."""

import os
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Union

from acquisition.logging import get_logger

from .broadcaster import OutputBroadcaster
from .models import OutputKind, ProcessResult

logger = get_logger(__name__, component="runner")

STDERR_PREFIX = "[ERROR] "
SPAWN_FAILURE_EXIT_CODE = 1


class ProcessRunner:
    """
    Runs one external command and streams its output as it is produced.

    stdout and stderr are read line by line on two reader threads. Each line
    is published on the broadcaster immediately and appended to the call's
    combined output. In the combined text, stderr lines are prefixed with
    ``[ERROR] ``.

    ``run`` never raises. A process that cannot be started is reported as
    exit code 1 with a ``Process error: ...`` stderr line, so callers branch
    on the exit code alone. There is no timeout: ``run`` waits for the
    process to exit.
    """

    def __init__(self, broadcaster: Optional[OutputBroadcaster] = None, encoding: str = "utf-8"):
        self.broadcaster = broadcaster
        self.encoding = encoding

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        working_directory: Union[str, Path, None] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        """
        Run a command to completion.

        Args:
            command: Program name or path
            args: Arguments passed to the program
            working_directory: Directory to run in (default: current directory)
            env: Variables added on top of the caller's environment

        Returns:
            ProcessResult with the exit code and combined output
        """
        chunks: List[str] = []
        chunks_lock = threading.Lock()

        def record(kind: OutputKind, text: str) -> None:
            # Combined output and published events share one order
            with chunks_lock:
                chunks.append(text if kind is OutputKind.STDOUT else f"{STDERR_PREFIX}{text}")
                if self.broadcaster is not None:
                    self.broadcaster.emit(kind, text)

        def combined() -> str:
            with chunks_lock:
                return "".join(chunks)

        argv = [command, *args]
        cwd = str(working_directory) if working_directory is not None else None

        logger.info(
            f"Starting process: {' '.join(argv)}",
            extra={
                "event": "process.starting",
                "command": command,
                "working_directory": cwd,
            },
        )

        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                env={**os.environ, **(env or {})},
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding=self.encoding,
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error(
                f"Failed to start process {command}: {e}",
                extra={
                    "event": "process.spawn_failed",
                    "command": command,
                    "error_type": type(e).__name__,
                },
            )
            record(OutputKind.STDERR, f"Process error: {e}\n")
            return ProcessResult(exit_code=SPAWN_FAILURE_EXIT_CODE, output=combined())

        readers = [
            threading.Thread(
                target=_pump,
                args=(process.stdout, OutputKind.STDOUT, record),
                name=f"pid-{process.pid}-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=_pump,
                args=(process.stderr, OutputKind.STDERR, record),
                name=f"pid-{process.pid}-stderr",
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        exit_code = process.wait()
        for reader in readers:
            reader.join()

        logger.info(
            f"Process exited with code {exit_code}: {command}",
            extra={
                "event": "process.exited",
                "command": command,
                "exit_code": exit_code,
                "pid": process.pid,
            },
        )

        return ProcessResult(exit_code=exit_code, output=combined())


def _pump(stream, kind: OutputKind, record: Callable[[OutputKind, str], None]) -> None:
    """Forward lines from a pipe until EOF."""
    try:
        for line in iter(stream.readline, ""):
            record(kind, line)
    except Exception as e:
        logger.error(
            f"Error reading {kind.value}: {e}",
            extra={"event": "process.read_failed", "output_kind": kind},
            exc_info=True,
        )
    finally:
        stream.close()
