"""
Exception hierarchy for autoapply.

Configuration errors are raised while the config is loaded and abort the
program before the loop starts. Command errors are raised by a single
command run and are handled by the batch error policy.
"""

from typing import Optional


class AutoapplyError(Exception):
    """Base class for all autoapply errors."""


class ConfigError(AutoapplyError):
    """Base class for configuration-time errors."""


class InvalidConfig(ConfigError):
    """Missing or malformed configuration."""


class InvalidCommand(ConfigError):
    """Malformed command entry."""


class InvalidPolicy(ConfigError):
    """Unknown onerror value."""


class CommandError(AutoapplyError):
    """A command could not be run to a successful exit."""

    def __init__(self, command, message: str):
        super().__init__(message)
        self.command = command


class SpawnFailure(CommandError):
    """The OS could not launch the command (e.g. executable not found)."""

    def __init__(self, command, cause: OSError):
        super().__init__(command, f"Could not start {command.display}: {cause}")
        self.cause = cause

    @property
    def not_found(self) -> bool:
        return isinstance(self.cause, FileNotFoundError)


class NonZeroExit(CommandError):
    """The command ran but exited with a non-zero status."""

    def __init__(self, command, returncode: int):
        super().__init__(
            command, f"Command failed with exit code {returncode}: {command.display}"
        )
        self.returncode = returncode


class ServerStartupError(AutoapplyError):
    """The liveness server could not bind its port."""

    def __init__(self, port: int, cause: Optional[OSError] = None):
        message = f"Could not start server on port {port}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.port = port
        self.cause = cause
