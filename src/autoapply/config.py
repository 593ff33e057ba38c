"""
Configuration loading for autoapply.

Reads the YAML config file and turns it into validated, immutable config
objects with the command entries already parsed into Commands.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from .command import Command
from .errors import InvalidConfig
from .models import ErrorPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = ("autoapply.yaml", "autoapply.yml")
DEFAULT_SLEEP_SECONDS = 60.0
DEFAULT_PORT = 3000


@dataclass(frozen=True)
class LoopConfig:
    """The repeated part: commands run once per iteration."""
    commands: tuple[Command, ...]
    sleep: float = DEFAULT_SLEEP_SECONDS
    onerror: ErrorPolicy = ErrorPolicy.CONTINUE
    loops: Optional[int] = None


@dataclass(frozen=True)
class InitConfig:
    """Commands run once, before the loop, in the current directory."""
    commands: tuple[Command, ...] = ()
    onerror: ErrorPolicy = ErrorPolicy.FAIL


@dataclass(frozen=True)
class ServerConfig:
    enabled: bool = True
    port: int = DEFAULT_PORT


@dataclass(frozen=True)
class AutoapplyConfig:
    """Complete, validated configuration."""
    loop: LoopConfig
    init: InitConfig = field(default_factory=InitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def parse_sleep(value) -> float:
    """Parse the loop sleep value.

    0 means no sleep. Missing, empty or negative values fall back to the
    default of 60 seconds.
    """
    if isinstance(value, bool):
        raise InvalidConfig(f"invalid sleep value: {value}")
    if value == 0 or value == "0":
        return 0.0
    if not value:
        logger.debug("Using default sleep value")
        return DEFAULT_SLEEP_SECONDS
    try:
        sleep = float(value)
    except (TypeError, ValueError):
        raise InvalidConfig(f"invalid sleep value: {value}") from None
    if sleep < 0:
        logger.debug("Using default sleep value")
        return DEFAULT_SLEEP_SECONDS
    return sleep


def parse_loops(value) -> Optional[int]:
    """Parse the optional iteration cap."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidConfig(f"invalid loops value: {value}")
    return value


def parse_port(value) -> int:
    if not value:
        return DEFAULT_PORT
    if isinstance(value, bool) or not isinstance(value, int) or not 0 < value < 65536:
        raise InvalidConfig(f"invalid port value: {value}")
    return value


def _section(data: dict, name: str) -> dict:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise InvalidConfig(f"invalid {name} section!")
    return section


def _commands(section: dict, name: str) -> tuple[Command, ...]:
    entries = section.get("commands") or []
    if not isinstance(entries, list):
        raise InvalidConfig(f"{name} commands must be a list!")
    return tuple(Command.from_entry(entry) for entry in entries)


def parse_config(data: Any) -> AutoapplyConfig:
    """Validate a loaded config document.

    Raises:
        InvalidConfig: If the document or a required field is malformed
        InvalidCommand: If a command entry is malformed
        InvalidPolicy: If an onerror value is unknown
    """
    if not isinstance(data, dict) or not data.get("loop"):
        raise InvalidConfig("invalid configuration!")

    loop = _section(data, "loop")
    loop_commands = _commands(loop, "loop")
    if not loop_commands:
        raise InvalidConfig("no loop commands given in the configuration file!")

    init = _section(data, "init")
    server = _section(data, "server")

    return AutoapplyConfig(
        loop=LoopConfig(
            commands=loop_commands,
            sleep=parse_sleep(loop.get("sleep")),
            onerror=ErrorPolicy.parse(loop.get("onerror"), ErrorPolicy.CONTINUE),
            loops=parse_loops(loop.get("loops")),
        ),
        init=InitConfig(
            commands=_commands(init, "init"),
            onerror=ErrorPolicy.parse(init.get("onerror"), ErrorPolicy.FAIL),
        ),
        server=ServerConfig(
            enabled=server.get("enabled") is not False,
            port=parse_port(server.get("port")),
        ),
    )


def find_config_file(directory: str = ".") -> Optional[str]:
    """Return the first default config file present in ``directory``."""
    for name in DEFAULT_CONFIG_FILES:
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            return path
    return None


def load_config(path: str) -> AutoapplyConfig:
    """Load and validate a YAML config file.

    Args:
        path: Path to the config file

    Returns:
        The validated AutoapplyConfig
    """
    logger.debug(f"Loading configuration from {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise InvalidConfig(f"could not read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidConfig(f"could not parse configuration file {path}: {e}") from e
    return parse_config(data)
