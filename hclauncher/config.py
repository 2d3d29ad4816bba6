"""Settings for launching a conductor process."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

_LOG_LEVELS = ("ERROR", "WARN", "INFO", "DEBUG", "TRACE")


@dataclass(frozen=True)
class LaunchHolochainConfig:
    """Everything needed to start a conductor.

    ``command`` is the program to run followed by any leading arguments;
    ``log_level`` is one of ERROR, WARN, INFO, DEBUG or TRACE.
    """

    log_level: str
    admin_port: int
    command: Sequence[str]
    conductor_config_dir: Path
    environment_path: Path
    keystore_connection_url: str

    def __post_init__(self) -> None:
        level = str(self.log_level).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"invalid log level: {self.log_level!r}")
        if not 0 <= int(self.admin_port) <= 0xFFFF:
            raise ValueError(f"admin port out of range: {self.admin_port}")
        command = tuple(str(part) for part in self.command)
        if not command:
            raise ValueError("command must name a program")
        object.__setattr__(self, "log_level", level)
        object.__setattr__(self, "admin_port", int(self.admin_port))
        object.__setattr__(self, "command", command)
        object.__setattr__(self, "conductor_config_dir", Path(self.conductor_config_dir))
        object.__setattr__(self, "environment_path", Path(self.environment_path))
        object.__setattr__(self, "keystore_connection_url", str(self.keystore_connection_url))

    def with_environment_path(self, environment_path) -> "LaunchHolochainConfig":
        """Return a copy whose conductor data lives under ``environment_path``."""
        return dataclasses.replace(self, environment_path=Path(environment_path))