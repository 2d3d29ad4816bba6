"""Starting a conductor process and watching its output until it is ready."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import sys
from typing import Sequence

from .errors import (
    AddressAlreadyInUseError,
    CouldNotInitializeConductor,
    ErrorWritingPassword,
    ImpossibleError,
    InitializeConductorError,
    LaunchChildError,
    SqliteConductorError,
    UnknownConductorError,
)

logger = logging.getLogger(__name__)

_READY_LINE = "Conductor ready."
_ADDRESS_IN_USE = "Could not initialize Conductor from configuration: Address already in use"
_ADDRESS_IN_USE_PREFIX = (
    "Could not initialize Conductor from configuration: InterfaceError(WebsocketError(Io(Os"
)
_NOT_A_DATABASE = (
    "DatabaseError(SqliteError(SqliteFailure(Error { code: NotADatabase, extended_code: 26 }, "
    'Some("file is not a database"))))'
)
_UNKNOWN_ERROR = "Unknown error when trying to initialize conductor. See log file for details."
_LINE_LIMIT = 1 << 20

# Keeps the output readers alive after the launch has been decided.
_BACKGROUND_TASKS: set[asyncio.Task] = set()


class LaunchState(enum.Enum):
    """Where a conductor launch stands while its output is being read."""

    PENDING = "pending"
    INITIALIZE_CONDUCTOR_ERROR = "initialize_conductor_error"
    SUCCESS = "success"


class ConductorOutputMonitor:
    """Interprets conductor output lines to decide whether the launch succeeded.

    ``windows`` selects the Windows error patterns instead of the Unix ones;
    by default it follows the running platform.
    """

    def __init__(self, windows: bool | None = None) -> None:
        self.windows = sys.platform == "win32" if windows is None else bool(windows)
        self.state = LaunchState.PENDING
        self.error: InitializeConductorError | None = None
        self._fatal = False

    def _fail(self, error: InitializeConductorError) -> None:
        self.state = LaunchState.INITIALIZE_CONDUCTOR_ERROR
        self.error = error

    def feed_stdout(self, line: str) -> bool:
        """Take one stdout line; return True once the launch is decided."""
        if line == _READY_LINE:
            self.state = LaunchState.SUCCESS
            return True
        return False

    def feed_stderr(self, line: str) -> bool:
        """Take one stderr line; return True once the launch is decided."""
        if self.windows:
            if "websocket_error_from_network=Io" in line and "ConnectionReset" in line:
                self._fail(AddressAlreadyInUseError(_ADDRESS_IN_USE))
                return True
            return False

        if "FATAL PANIC PanicInfo" in line or "Well, this is embarrassing" in line:
            self._fatal = True
        if _ADDRESS_IN_USE_PREFIX in line and "Address already in use" in line:
            self._fail(AddressAlreadyInUseError(_ADDRESS_IN_USE))
            return True
        if self._fatal and _NOT_A_DATABASE in line:
            self._fail(SqliteConductorError(_NOT_A_DATABASE))
            return True
        if self._fatal and "Thank you kindly!" in line:
            # No known error appeared between the panic banner and its end.
            self._fail(UnknownConductorError(_UNKNOWN_ERROR))
        return False

    def result(self) -> None:
        """Return if the conductor became ready, otherwise raise the launch error."""
        if self.state is LaunchState.SUCCESS:
            return
        if self.state is LaunchState.INITIALIZE_CONDUCTOR_ERROR and self.error is not None:
            raise CouldNotInitializeConductor(self.error)
        raise ImpossibleError(
            "LaunchHolochainProcessState still pending after launching the holochain process."
        )


def _keep(task: asyncio.Task) -> None:
    _BACKGROUND_TASKS.add(task)
    task.add_done_callback(_BACKGROUND_TASKS.discard)


async def launch_holochain_process(
    log_level, version, command: Sequence[str], conductor_config_path, password: str
) -> asyncio.subprocess.Process:
    """Start the conductor, hand it the passphrase and wait until it is ready.

    ``command`` is the program followed by any leading arguments. Output keeps
    being logged after this returns. Returns the running process.
    """
    level = str(log_level).upper()
    env = {**os.environ, "RUST_LOG": level, "WASM_LOG": level}
    parts = [str(part) for part in command]
    if not parts:
        raise LaunchChildError("no program to execute")
    program, *leading = parts

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *leading,
            "-c",
            str(conductor_config_path),
            "-p",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            limit=_LINE_LIMIT,
        )
    except OSError as err:
        raise LaunchChildError(str(err)) from err

    try:
        process.stdin.write(password.encode() + b"\n")
        await process.stdin.drain()
    except OSError as err:
        raise ErrorWritingPassword(repr(err)) from err

    prefix = f"[HOLOCHAIN {version}]"
    monitor = ConductorOutputMonitor()
    decided = asyncio.Event()
    queue: asyncio.Queue = asyncio.Queue()

    async def pump(stream: asyncio.StreamReader, kind: str) -> None:
        async for raw in stream:
            line = raw.decode(errors="replace").rstrip("\r\n")
            logger.info("%s %s", prefix, line)
            if not decided.is_set():
                await queue.put((kind, line))
        logger.info("%s %s closed", prefix, kind)
        if not decided.is_set():
            await queue.put((kind, None))

    _keep(asyncio.create_task(pump(process.stdout, "stdout")))
    _keep(asyncio.create_task(pump(process.stderr, "stderr")))

    open_streams = 2
    while open_streams:
        kind, line = await queue.get()
        if line is None:
            open_streams -= 1
            continue
        feed = monitor.feed_stdout if kind == "stdout" else monitor.feed_stderr
        if feed(line):
            break
    decided.set()

    logger.info("Launched holochain")
    logger.info("LaunchHolochainProcessState::%s", monitor.state.name)
    monitor.result()
    return process