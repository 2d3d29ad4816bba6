"""Running a conductor and driving it through its admin interface."""

from __future__ import annotations

import asyncio
import logging
import socket
import tempfile
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from .config import LaunchHolochainConfig
from .errors import (
    CouldNotConnectToConductor,
    FileSystemError,
    HolochainIoError,
    LaunchChildError,
)
from .files import create_dir_if_necessary
from .launch import launch_holochain_process
from .versions import HolochainVersion

logger = logging.getLogger(__name__)

_STARTUP_PAUSE = 0.1
_RECONNECT_DELAY = 5.0


class AdminClient(Protocol):
    """The calls made on a conductor's admin interface."""

    async def list_app_interfaces(self) -> list[int]: ...

    async def attach_app_interface(self, port: int) -> Any: ...

    async def generate_agent_pub_key(self) -> Any: ...

    async def install_app(self, payload: dict) -> Any: ...

    async def enable_app(self, app_id: str) -> Any: ...

    async def disable_app(self, app_id: str) -> Any: ...

    async def uninstall_app(self, app_id: str) -> Any: ...

    async def delete_clone_cell(self, payload: dict) -> Any: ...

    async def list_apps(self, status_filter: Any = None) -> list: ...

    def close(self) -> None: ...


Connector = Callable[[str], Awaitable[AdminClient]]


def pick_unused_port() -> int:
    """A TCP port on localhost that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class HolochainManager:
    """A running conductor process together with its admin connection."""

    def __init__(
        self,
        version: HolochainVersion,
        admin_interface_port: int,
        app_interface_port: int,
        ws: AdminClient,
        process: asyncio.subprocess.Process,
    ) -> None:
        self.version = version
        self._admin_interface_port = admin_interface_port
        self._app_interface_port = app_interface_port
        self._ws = ws
        self.process = process

    @classmethod
    async def launch(
        cls,
        version: HolochainVersion,
        config: LaunchHolochainConfig,
        password: str,
        connect: Connector,
    ) -> "HolochainManager":
        """Write the conductor configuration, start the conductor and connect to it.

        ``connect`` opens an admin connection for a ``ws://`` URL.
        """
        config_path = Path(config.conductor_config_dir) / "conductor-config.yaml"
        try:
            create_dir_if_necessary(config.conductor_config_dir)
            create_dir_if_necessary(config.environment_path)
        except FileSystemError as err:
            raise LaunchChildError(err) from err

        version_manager = version.manager()
        if config_path.exists():
            try:
                current = config_path.read_text()
            except OSError as err:
                raise HolochainIoError(repr(err)) from err
            new_config = version_manager.overwrite_config(
                current, config.admin_port, config.keystore_connection_url
            )
        else:
            new_config = version_manager.initial_config(
                config.admin_port, config.environment_path, config.keystore_connection_url
            )
        try:
            config_path.write_text(new_config)
        except OSError as err:
            raise HolochainIoError(repr(err)) from err

        process = await launch_holochain_process(
            config.log_level, version, config.command, config_path, password
        )
        await asyncio.sleep(_STARTUP_PAUSE)

        url = f"ws://localhost:{config.admin_port}"
        # The conductor may not accept connections yet; try a second time.
        try:
            ws = await connect(url)
        except Exception:
            logger.error(
                "[HOLOCHAIN %s] Could not connect to the AdminWebsocket. "
                "Starting another attempt in 5 seconds.",
                version,
            )
            await asyncio.sleep(_RECONNECT_DELAY)
            try:
                ws = await connect(url)
            except Exception as err:
                raise CouldNotConnectToConductor(str(err)) from err

        try:
            app_interfaces = list(await ws.list_app_interfaces())
        except Exception as err:
            raise CouldNotConnectToConductor("Could not list app interfaces") from err

        if app_interfaces:
            app_interface_port = app_interfaces[0]
        else:
            app_interface_port = pick_unused_port()
            try:
                await ws.attach_app_interface(app_interface_port)
            except Exception as err:
                raise CouldNotConnectToConductor("Could not attach app interface") from err

        return cls(version, config.admin_port, app_interface_port, ws, process)

    def admin_interface_port(self) -> int:
        """The conductor's admin interface port number."""
        return self._admin_interface_port

    def app_interface_port(self) -> int:
        """The conductor's app interface port number."""
        return self._app_interface_port

    def kill(self) -> None:
        """Close the admin connection and kill the conductor process."""
        self._ws.close()
        try:
            self.process.kill()
        except ProcessLookupError as err:
            raise RuntimeError(f"Could not kill the holochain process: {err}") from err

    async def install_app(
        self,
        app_id: str,
        app_bundle: bytes,
        network_seed=None,
        membrane_proofs=None,
        agent_pub_key=None,
    ) -> None:
        """Install an app bundle under ``app_id`` and enable it."""
        if agent_pub_key is None:
            try:
                agent_pub_key = await self._ws.generate_agent_pub_key()
            except Exception as err:
                raise RuntimeError(f"Error generating public key: {err!r}") from err

        path = Path(tempfile.gettempdir()) / f"app_to_install{time.time_ns()}.webhapp"
        try:
            path.write_bytes(bytes(app_bundle))
        except OSError as err:
            raise RuntimeError(f"Could not write app bundle to temp file: {err}") from err

        payload = {
            "source": {"path": str(path)},
            "agent_key": agent_pub_key,
            "installed_app_id": app_id,
            "membrane_proofs": dict(membrane_proofs or {}),
            "network_seed": network_seed,
        }
        try:
            await self._ws.install_app(payload)
        except Exception as err:
            raise RuntimeError(f"Error install hApp bundle: {err!r}") from err
        await self.enable_app(app_id)

    async def uninstall_app(self, app_id: str) -> None:
        """Remove an app from the conductor."""
        try:
            await self._ws.uninstall_app(app_id)
        except Exception as err:
            raise RuntimeError(f"Error uninstalling app: {err!r}") from err

    async def enable_app(self, app_id: str) -> None:
        """Enable an installed app."""
        try:
            await self._ws.enable_app(app_id)
        except Exception as err:
            raise RuntimeError(f"Error enabling app: {err!r}") from err

    async def disable_app(self, app_id: str) -> None:
        """Disable an installed app."""
        try:
            await self._ws.disable_app(app_id)
        except Exception as err:
            raise RuntimeError(f"Error disabling app: {err!r}") from err

    async def delete_clone(self, app_id: str, cell_id) -> None:
        """Delete a cloned cell of an app."""
        payload = {"app_id": app_id, "clone_cell_id": cell_id}
        try:
            await self._ws.delete_clone_cell(payload)
        except Exception as err:
            raise RuntimeError(f"Error deleting cloned cell: {err!r}") from err

    async def list_apps(self) -> list:
        """The apps installed in the conductor."""
        try:
            return list(await self._ws.list_apps(None))
        except Exception as err:
            raise RuntimeError("Could not get the currently installed apps") from err