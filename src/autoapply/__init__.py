"""
autoapply: run commands on a timed loop.

Runs a configured sequence of external commands over and over, each
iteration in a fresh scratch directory, with a per-batch error policy and
an HTTP liveness endpoint. Typical use is a "render then apply" task kept
running unattended in a container.

Quick Start:
    from autoapply import IterationLoop, load_config

    config = load_config("autoapply.yaml")
    IterationLoop(config).run()
"""

__version__ = "0.1.0"

from .errors import (
    AutoapplyError,
    CommandError,
    ConfigError,
    InvalidCommand,
    InvalidConfig,
    InvalidPolicy,
    NonZeroExit,
    ServerStartupError,
    SpawnFailure,
)
from .models import (
    ArgvSpec,
    BatchResult,
    CommandResult,
    ErrorPolicy,
    LoopPhase,
    LoopState,
    ShellSpec,
    StdioMode,
)
from .command import Command
from .batch import BatchRunner
from .config import AutoapplyConfig, InitConfig, LoopConfig, ServerConfig, load_config, parse_config
from .server import LivenessServer, create_app
from .loop import IterationLoop, scratch_directory

__all__ = [
    "__version__",
    # Errors
    "AutoapplyError",
    "CommandError",
    "ConfigError",
    "InvalidCommand",
    "InvalidConfig",
    "InvalidPolicy",
    "NonZeroExit",
    "ServerStartupError",
    "SpawnFailure",
    # Models
    "ArgvSpec",
    "BatchResult",
    "CommandResult",
    "ErrorPolicy",
    "LoopPhase",
    "LoopState",
    "ShellSpec",
    "StdioMode",
    # Engine
    "Command",
    "BatchRunner",
    "IterationLoop",
    "scratch_directory",
    # Config
    "AutoapplyConfig",
    "InitConfig",
    "LoopConfig",
    "ServerConfig",
    "load_config",
    "parse_config",
    # Server
    "LivenessServer",
    "create_app",
]
