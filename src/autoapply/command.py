"""
Command execution for autoapply.

A Command is one step of a batch: either a shell string or an argv list,
plus the disposition of its stdout and stderr. Running a command spawns the
child in a given directory, streams its output through to this process and
waits for it to exit.
"""

import codecs
import json
import logging
import os
import subprocess
import sys
import threading
import time
from typing import IO, Optional

from .errors import InvalidCommand, NonZeroExit, SpawnFailure
from .models import ArgvSpec, CommandResult, CommandSpec, ShellSpec, StdioMode

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def parse_spec(value) -> CommandSpec:
    """Turn a raw command value into a tagged spec.

    Raises:
        InvalidCommand: If the value is empty or of the wrong type
    """
    if isinstance(value, str):
        command = value.strip()
        if not command:
            raise InvalidCommand(f"invalid command: {value!r}")
        return ShellSpec(command)

    if isinstance(value, (list, tuple)):
        if not value or not isinstance(value[0], str) or not value[0]:
            raise InvalidCommand(f"invalid command: {value!r}")
        if not all(isinstance(arg, str) for arg in value):
            raise InvalidCommand(f"invalid command arguments: {value!r}")
        return ArgvSpec(tuple(value))

    raise InvalidCommand(f"invalid command: {value!r}")


def _pump(source: IO[bytes], target: IO) -> None:
    """Copy bytes from a child pipe to ``target`` as they arrive.

    If writing to ``target`` fails, the rest of the output is read and
    discarded so the child never blocks on a full pipe.
    """
    sink = getattr(target, "buffer", None)
    decoder = None if sink is not None else codecs.getincrementaldecoder("utf-8")(errors="replace")
    fd = source.fileno()
    writable = True
    try:
        while True:
            chunk = os.read(fd, CHUNK_SIZE)
            if not chunk:
                break
            if not writable:
                continue
            try:
                if sink is not None:
                    sink.write(chunk)
                    sink.flush()
                else:
                    target.write(decoder.decode(chunk))
                    target.flush()
            except OSError as e:
                logger.warning(f"Could not write command output, discarding the rest: {e}")
                writable = False
        if writable and decoder is not None:
            tail = decoder.decode(b"", final=True)
            if tail:
                try:
                    target.write(tail)
                    target.flush()
                except OSError as e:
                    logger.warning(f"Could not write command output: {e}")
    finally:
        source.close()


class Command:
    """One executable step of a batch.

    Example:
        cmd = Command("kubectl apply -f manifests/")
        cmd.run("/tmp/work")

        cmd = Command(["helm", "template", "."], stderr="ignore")
        cmd.run("/tmp/work")
    """

    def __init__(self, spec, stdout=None, stderr=None):
        """Create a command.

        Args:
            spec: A shell string or a non-empty list of program + arguments
            stdout: "pipe" (default) or "ignore"
            stderr: "pipe" (default) or "ignore"

        Raises:
            InvalidCommand: If the spec or a stdio mode is invalid
        """
        if isinstance(spec, ShellSpec):
            spec = spec.command
        elif isinstance(spec, ArgvSpec):
            spec = spec.argv
        self._spec = parse_spec(spec)
        self._stdout = StdioMode.parse(stdout)
        self._stderr = StdioMode.parse(stderr)

    @classmethod
    def from_entry(cls, entry) -> "Command":
        """Build a command from a config entry.

        An entry is a plain string, or a mapping with a ``command`` key and
        optional ``stdout``/``stderr`` keys.
        """
        if isinstance(entry, dict):
            return cls(entry.get("command"), entry.get("stdout"), entry.get("stderr"))
        return cls(entry)

    @property
    def spec(self) -> CommandSpec:
        return self._spec

    @property
    def stdout(self) -> StdioMode:
        return self._stdout

    @property
    def stderr(self) -> StdioMode:
        return self._stderr

    @property
    def shell(self) -> bool:
        return isinstance(self._spec, ShellSpec)

    @property
    def display(self) -> str:
        return self._spec.display

    def __repr__(self) -> str:
        return (
            f"Command({self._describe()}, stdout={self._stdout.value!r}, "
            f"stderr={self._stderr.value!r})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Command):
            return NotImplemented
        return (self._spec, self._stdout, self._stderr) == (
            other._spec, other._stdout, other._stderr
        )

    def __hash__(self) -> int:
        return hash((self._spec, self._stdout, self._stderr))

    def _describe(self) -> str:
        if isinstance(self._spec, ShellSpec):
            return json.dumps(self._spec.command)
        return json.dumps(list(self._spec.argv))

    def _popen_args(self):
        if isinstance(self._spec, ShellSpec):
            return self._spec.command
        return list(self._spec.argv)

    def run(
        self,
        cwd: str,
        log: Optional[logging.Logger] = None,
        stdout: Optional[IO] = None,
        stderr: Optional[IO] = None,
    ) -> CommandResult:
        """Run the command in ``cwd`` and wait for it to finish.

        Args:
            cwd: Working directory for the child
            log: Logger for the "Executing command" line
            stdout: Stream piped stdout goes to (default: sys.stdout)
            stderr: Stream piped stderr goes to (default: sys.stderr)

        Returns:
            CommandResult for a zero exit status

        Raises:
            SpawnFailure: If the process could not be started
            NonZeroExit: If the process exited with a non-zero status
        """
        log = log or logger
        log.info(f"Executing command: {self._describe()}")

        targets = {
            "stdout": stdout if stdout is not None else sys.stdout,
            "stderr": stderr if stderr is not None else sys.stderr,
        }
        start_time = time.time()

        try:
            process = subprocess.Popen(
                self._popen_args(),
                cwd=cwd,
                shell=self.shell,
                stdin=subprocess.DEVNULL,
                stdout=self._popen_stdio(self._stdout),
                stderr=self._popen_stdio(self._stderr),
            )
        except OSError as e:
            raise SpawnFailure(self, e) from e

        pumps = []
        for name in ("stdout", "stderr"):
            source = getattr(process, name)
            if source is None:
                continue
            thread = threading.Thread(
                target=_pump,
                args=(source, targets[name]),
                name=f"autoapply-{name}-{process.pid}",
                daemon=True,
            )
            thread.start()
            pumps.append(thread)

        returncode = process.wait()
        for thread in pumps:
            thread.join()

        duration = time.time() - start_time
        if returncode != 0:
            raise NonZeroExit(self, returncode)

        log.debug(f"Command finished in {duration:.1f}s")
        return CommandResult(
            command=self.display,
            returncode=returncode,
            duration_seconds=duration,
        )

    @staticmethod
    def _popen_stdio(mode: StdioMode) -> int:
        if mode == StdioMode.PIPE:
            return subprocess.PIPE
        return subprocess.DEVNULL
