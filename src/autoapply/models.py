"""
Data models for autoapply.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .errors import InvalidCommand, InvalidPolicy


class ErrorPolicy(Enum):
    """What a batch does when one of its commands fails."""
    FAIL = "fail"  # abort the batch and propagate the error
    CONTINUE = "continue"  # abandon the rest of the batch, report success
    IGNORE = "ignore"  # skip the failed command, run the rest

    @classmethod
    def parse(cls, value, default: "ErrorPolicy") -> "ErrorPolicy":
        """Parse an onerror value, using ``default`` when it is unset.

        Raises:
            InvalidPolicy: If the value is not one of fail/continue/ignore
        """
        if isinstance(value, cls):
            return value
        if not value:
            return default
        try:
            return cls(value)
        except ValueError:
            raise InvalidPolicy(f"invalid onerror value: {value}") from None


class StdioMode(Enum):
    """Disposition of a child's stdout or stderr."""
    PIPE = "pipe"
    IGNORE = "ignore"

    @classmethod
    def parse(cls, value) -> "StdioMode":
        """Parse a stdio value; unset means ``pipe``."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PIPE
        try:
            return cls(value)
        except ValueError:
            raise InvalidCommand(f"invalid stdio value: {value}") from None


@dataclass(frozen=True)
class ShellSpec:
    """A command string run through the platform shell."""
    command: str

    @property
    def display(self) -> str:
        return self.command


@dataclass(frozen=True)
class ArgvSpec:
    """A program and its literal arguments, run without a shell."""
    argv: tuple[str, ...]

    @property
    def program(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> tuple[str, ...]:
        return self.argv[1:]

    @property
    def display(self) -> str:
        return " ".join(self.argv)


CommandSpec = Union[ShellSpec, ArgvSpec]


@dataclass
class CommandResult:
    """Result of a successful command run."""
    command: str
    returncode: int = 0
    duration_seconds: float = 0.0

    @property
    def summary(self) -> str:
        """Brief summary for logging."""
        return f"[OK] ({self.duration_seconds:.1f}s) {self.command}"


@dataclass
class BatchResult:
    """Outcome of a batch that did not abort."""
    policy: ErrorPolicy
    total: int
    results: list[CommandResult] = field(default_factory=list)
    failures: list[Exception] = field(default_factory=list)
    abandoned: bool = False

    @property
    def executed(self) -> int:
        """Number of commands that were started."""
        return len(self.results) + len(self.failures)

    @property
    def skipped(self) -> int:
        return self.total - self.executed

    @property
    def summary(self) -> str:
        """Brief summary for logging."""
        status = "ABANDONED" if self.abandoned else "DONE"
        return (
            f"[{status}] {len(self.results)}/{self.total} succeeded, "
            f"{len(self.failures)} failed, {self.skipped} skipped"
        )


class LoopPhase(Enum):
    """States of the loop phase."""
    PREPARE_DIR = "prepare_dir"
    RUN_BATCH = "run_batch"
    CLEANUP_DIR = "cleanup_dir"
    CHECK_LIMIT = "check_limit"
    SLEEP = "sleep"
    DONE = "done"


@dataclass
class LoopState:
    """Process-lifetime state of the iteration loop."""
    sleep_seconds: float = 60.0
    max_iterations: Optional[int] = None
    iteration: int = 1
    completed: int = 0
    phase: LoopPhase = LoopPhase.PREPARE_DIR

    @property
    def limit_reached(self) -> bool:
        return self.max_iterations is not None and self.completed >= self.max_iterations

    @property
    def is_done(self) -> bool:
        return self.phase == LoopPhase.DONE
