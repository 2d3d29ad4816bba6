"""Managing installed apps together with their UI assets and release hashes."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import zipfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import LaunchHolochainConfig
from .errors import FileSystemError, LaunchHolochainError, LaunchWebAppManagerError
from .files import create_dir_if_necessary, unzip_file
from .holochain_manager import Connector, HolochainManager, pick_unused_port
from .installed_web_app_info import HeadlessUi, InstalledWebAppInfo, WebAppUi, WebUiInfo
from .versions import HolochainVersion

logger = logging.getLogger(__name__)

# Only one UI per app is supported at the moment.
DEFAULT_UI_NAME = "default"


def apps_data_dir(root_path) -> Path:
    """Folder holding the data of all apps under a root directory."""
    return Path(root_path) / "apps"


def app_data_dir(root_path, app_id) -> Path:
    """Folder holding the data of one app."""
    return apps_data_dir(root_path) / app_id


def app_ui_dir(root_path, app_id, ui_name) -> Path:
    """Folder holding everything related to one UI of an app."""
    return app_data_dir(root_path, app_id) / "uis" / ui_name


def app_assets_dir(root_path, app_id, ui_name) -> Path:
    """Folder holding the assets of one UI of an app."""
    return app_ui_dir(root_path, app_id, ui_name) / "assets"


def app_local_storage_dir(root_path, app_id, ui_name) -> Path:
    """Folder holding the window's local storage for one UI of an app."""
    return app_ui_dir(root_path, app_id, ui_name) / "tauri"


def conductor_dir(root_path) -> Path:
    """Folder holding the conductor databases."""
    return Path(root_path) / "conductor"


def _raise(err: OSError) -> None:
    raise err


def directory_size(path) -> int:
    """Total size in bytes of the files below ``path``, or of ``path`` if it is a file.

    Raises ``FileNotFoundError`` if the path does not exist.
    """
    path = Path(path)
    info = path.stat()
    if not stat.S_ISDIR(info.st_mode):
        return info.st_size
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=_raise):
        for name in filenames:
            total += os.lstat(os.path.join(dirpath, name)).st_size
    return total


@dataclass(frozen=True)
class StorageInfo:
    """Bytes used on disk by UIs and by each conductor database."""

    uis: int
    authored: int
    cache: int
    conductor: int
    dht: int
    p2p: int
    wasm: int


def _installed_app_id(app) -> str:
    if isinstance(app, Mapping):
        return app["installed_app_id"]
    return app.installed_app_id


class WebAppManager:
    """A conductor plus the UIs, ports and release hashes of its apps."""

    def __init__(self, environment_path, holochain_manager: HolochainManager) -> None:
        self.environment_path = Path(environment_path)
        self.holochain_manager = holochain_manager
        self._allocated_ports: dict[str, int] = {}

    @classmethod
    async def launch(
        cls,
        version: HolochainVersion,
        config: LaunchHolochainConfig,
        password: str,
        connect: Connector,
    ) -> "WebAppManager":
        """Prepare the data folders, launch the conductor and load its apps."""
        environment_path = Path(config.environment_path)
        conductor_data_path = conductor_dir(environment_path)
        config = config.with_environment_path(conductor_data_path)

        try:
            for folder in (environment_path, conductor_data_path, apps_data_dir(environment_path)):
                create_dir_if_necessary(folder)
        except FileSystemError as err:
            raise LaunchWebAppManagerError(err) from err

        try:
            holochain_manager = await HolochainManager.launch(version, config, password, connect)
        except LaunchHolochainError as err:
            raise LaunchWebAppManagerError(err) from err

        manager = cls(environment_path, holochain_manager)
        try:
            await manager._on_running_apps_changed()
        except RuntimeError as err:
            raise LaunchWebAppManagerError(str(err)) from err
        return manager

    async def install_web_app(
        self,
        app_id: str,
        app_bundle: bytes,
        web_ui_zip_bytes: bytes,
        network_seed=None,
        membrane_proofs=None,
        agent_pub_key=None,
        happ_release_hash: Optional[str] = None,
        gui_release_hash: Optional[str] = None,
    ) -> None:
        """Install an app together with its UI.

        Release hashes must be given both or not at all.
        """
        if (happ_release_hash is None) != (gui_release_hash is None):
            raise RuntimeError(
                "Got only one of gui_release_hash or happ_release_hash. Pass either none of them "
                "if installing a .webhapp from filesystem or both if installing a .webhapp from "
                "the App Library."
            )
        # Hashes are written first so that a failure stops the installation early.
        if happ_release_hash is not None:
            try:
                self.store_happ_release_hash(happ_release_hash, app_id)
            except RuntimeError as err:
                raise RuntimeError(
                    f"Failed to store happ release hash to .happrelease file: {err!r}"
                ) from err

        self._install_app_ui(app_id, web_ui_zip_bytes, DEFAULT_UI_NAME, gui_release_hash)

        try:
            await self.holochain_manager.install_app(
                app_id, app_bundle, network_seed, membrane_proofs or {}, agent_pub_key
            )
        except Exception:
            self._uninstall_app_data(app_id)
            raise

        await self._on_running_apps_changed()

    def get_allocated_port(self, app_id: str) -> Optional[int]:
        """The UI port allocated to an app, if any."""
        return self._allocated_ports.get(app_id)

    def _install_app_ui(
        self,
        app_id: str,
        web_ui_zip_bytes: bytes,
        ui_name: str,
        gui_release_hash: Optional[str],
    ) -> None:
        if gui_release_hash is not None:
            self.store_gui_release_hash(gui_release_hash, app_id, ui_name)

        # update_app_ui relies on this being the folder it restores on failure.
        ui_folder = app_assets_dir(self.environment_path, app_id, ui_name)
        zip_path = apps_data_dir(self.environment_path) / f"{app_id}.zip"

        try:
            zip_path.write_bytes(bytes(web_ui_zip_bytes))
        except OSError as err:
            raise RuntimeError("Failed to write Web UI Zip file") from err

        try:
            unzip_file(zip_path, ui_folder)
        except (zipfile.BadZipFile, OSError) as err:
            raise RuntimeError(f"Failed to unzip Web UI Zip file: {err}") from err
        finally:
            try:
                zip_path.unlink(missing_ok=True)
            except OSError as err:
                raise RuntimeError("Failed to remove happ bundle") from err

    def update_app_ui(
        self,
        app_id: str,
        web_ui_zip_bytes: bytes,
        ui_name: str,
        gui_release_hash: Optional[str] = None,
    ) -> None:
        """Replace the UI assets of an app, restoring the old ones if that fails."""
        ui_folder = app_assets_dir(self.environment_path, app_id, ui_name)
        backup = app_ui_dir(self.environment_path, app_id, ui_name) / "assets_temp_backup"
        try:
            os.rename(ui_folder, backup)
        except OSError as err:
            raise RuntimeError(
                "Failed to move currently installed UI assets to temporary backup location: "
                f"{err!r}"
            ) from err

        if gui_release_hash is None:
            logger.warning(
                "WARNING: App UI updated without passing a gui release hash. This only expected "
                "if a GUI is updated from the filesystem instead of through fetching it form the "
                "DevHub"
            )

        try:
            self._install_app_ui(app_id, web_ui_zip_bytes, ui_name, gui_release_hash)
        except RuntimeError as install_err:
            logger.error("Failed to install app ui during update_app_ui: %r", install_err)
            try:
                if ui_folder.exists():
                    shutil.rmtree(ui_folder)
            except OSError as err:
                raise RuntimeError(
                    "Failed to remove assets dir when trying to restore the pre-update state due "
                    f"to failed installation of the new app UI: {err!r}"
                ) from err
            try:
                os.rename(backup, ui_folder)
            except OSError as err:
                raise RuntimeError(
                    "Failed to rename temporary assets backup dir when trying to restore the "
                    f"pre-update state due to failed installation of the new app UI: {err!r}"
                ) from err
            raise

        try:
            shutil.rmtree(backup)
        except OSError as err:
            raise RuntimeError(
                "Failed to remove temporary backup folder for assets after successful "
                f"installation: {err!r}"
            ) from err

    def _uninstall_app_data(self, app_id: str) -> None:
        folder = app_data_dir(self.environment_path, app_id)
        if folder.exists():
            try:
                shutil.rmtree(folder)
            except OSError as err:
                raise RuntimeError("Failed to remove app's data dir") from err

    async def _on_running_apps_changed(self) -> None:
        await self.list_apps()

    def _is_web_app(self, app_id: str) -> bool:
        return app_assets_dir(self.environment_path, app_id, DEFAULT_UI_NAME).exists()

    def _get_web_ui_info(self, app_id: str, ui_name: str) -> WebUiInfo:
        if not self._is_web_app(app_id):
            return HeadlessUi()
        port = self._allocated_ports.get(app_id)
        if port is None:
            raise RuntimeError(
                "This application was installed but we didn't allocate any port to it: "
                f"{app_id}"
            )
        return WebAppUi(
            app_assets_dir(self.environment_path, app_id, ui_name),
            port,
            self.get_gui_release_hash(app_id, ui_name),
        )

    def _allocate_necessary_ports(self, installed_apps) -> None:
        web_app_ids = {
            app_id
            for app_id in map(_installed_app_id, installed_apps)
            if self._is_web_app(app_id)
        }
        for app_id in web_app_ids:
            if app_id not in self._allocated_ports:
                self._allocated_ports[app_id] = pick_unused_port()
        for app_id in list(self._allocated_ports):
            if app_id not in web_app_ids:
                del self._allocated_ports[app_id]

    def get_app_assets_dir(self, app_id: str, ui_name: str) -> Path:
        """Folder of the given app UI's assets."""
        return app_assets_dir(self.environment_path, app_id, ui_name)

    def get_app_local_storage_dir(self, app_id: str, ui_name: str) -> Path:
        """Folder of the given app UI's local storage."""
        return app_local_storage_dir(self.environment_path, app_id, ui_name)

    def kill(self) -> None:
        """Stop the conductor."""
        self.holochain_manager.kill()

    async def install_app(
        self,
        app_id: str,
        app_bundle: bytes,
        network_seed=None,
        membrane_proofs=None,
        agent_pub_key=None,
        happ_release_hash: Optional[str] = None,
    ) -> None:
        """Install an app without a UI."""
        if happ_release_hash is not None:
            self.store_happ_release_hash(happ_release_hash, app_id)
        try:
            await self.holochain_manager.install_app(
                app_id, app_bundle, network_seed, membrane_proofs or {}, agent_pub_key
            )
        except RuntimeError as err:
            logger.error("Error installing hApp in the conductor: %s", err)
            raise
        await self._on_running_apps_changed()

    async def uninstall_app(self, app_id: str) -> None:
        """Remove an app from the conductor and delete its UIs and local storage."""
        try:
            await self.holochain_manager.uninstall_app(app_id)
        except RuntimeError as err:
            logger.error("Error uninstalling hApp in the conductor: %s", err)
            raise
        self._uninstall_app_data(app_id)
        await self._on_running_apps_changed()

    async def enable_app(self, app_id: str) -> None:
        """Enable an installed app."""
        await self.holochain_manager.enable_app(app_id)
        await self._on_running_apps_changed()

    async def disable_app(self, app_id: str) -> None:
        """Disable an installed app."""
        await self.holochain_manager.disable_app(app_id)
        await self._on_running_apps_changed()

    async def delete_clone(self, app_id: str, cell_id) -> None:
        """Delete a cloned cell of an app."""
        await self.holochain_manager.delete_clone(app_id, cell_id)
        await self._on_running_apps_changed()

    async def list_apps(self) -> list[InstalledWebAppInfo]:
        """The installed apps with their UIs; allocates UI ports as needed."""
        installed_apps = await self.holochain_manager.list_apps()
        self._allocate_necessary_ports(installed_apps)
        result = []
        for app in installed_apps:
            app_id = _installed_app_id(app)
            ui_info = self._get_web_ui_info(app_id, DEFAULT_UI_NAME)
            result.append(
                InstalledWebAppInfo(
                    installed_app_info=app,
                    happ_release_hash=self.get_happ_release_hash(app_id),
                    web_uis={DEFAULT_UI_NAME: ui_info},
                )
            )
        return result

    def admin_interface_port(self) -> int:
        """The conductor's admin interface port number."""
        return self.holochain_manager.admin_interface_port()

    def app_interface_port(self) -> int:
        """The conductor's app interface port number."""
        return self.holochain_manager.app_interface_port()

    def get_storage_info(self) -> StorageInfo:
        """Disk usage of the UIs and of each conductor database."""
        try:
            uis = directory_size(apps_data_dir(self.environment_path))
        except OSError as err:
            raise RuntimeError(f"Failed to get UI directory size: {err!r}") from err
        conductor_path = conductor_dir(self.environment_path)
        sizes = {}
        for name in ("authored", "cache", "conductor", "dht", "p2p", "wasm"):
            try:
                sizes[name] = directory_size(conductor_path / name)
            except OSError as err:
                raise RuntimeError(f"Failed to get conductor directory size: {err!r}") from err
        return StorageInfo(uis=uis, **sizes)

    def store_happ_release_hash(self, hash: str, app_id: str) -> None:
        """Record the happ release hash of an app, keeping the previous one."""
        folder = app_data_dir(self.environment_path, app_id)
        try:
            create_dir_if_necessary(folder)
        except FileSystemError as err:
            raise RuntimeError(
                f"Failed to create app's data directory before storing happ release hash: {err!r}"
            ) from err

        current = folder / ".happrelease"
        if current.exists():
            try:
                os.replace(current, folder / ".happrelease.previous")
            except OSError as err:
                raise RuntimeError(
                    f"Failed to rename .happrelease file to .happrelease.previous file: {err!r}"
                ) from err
        try:
            current.write_text(hash)
        except OSError as err:
            raise RuntimeError(
                f"Failed to write happ release hash to .happrelease file: {err!r}"
            ) from err

    def store_gui_release_hash(self, hash: str, app_id: str, ui_name: str) -> None:
        """Record the GUI release hash of an app UI, keeping the previous one."""
        folder = app_ui_dir(self.environment_path, app_id, ui_name)
        try:
            create_dir_if_necessary(folder)
        except FileSystemError as err:
            raise RuntimeError(
                f"Failed to create app's data directory before storing happ release hash: {err!r}"
            ) from err

        current = folder / ".guirelease"
        if current.exists():
            previous = app_data_dir(self.environment_path, app_id) / ".guirelease.previous"
            try:
                os.replace(current, previous)
            except OSError as err:
                raise RuntimeError(
                    f"Failed to rename .guirelease file to .guirelease.previous file: {err!r}"
                ) from err
        try:
            current.write_text(hash)
        except OSError as err:
            raise RuntimeError(
                f"Failed to write GUI release hash to .guirelease file: {err!r}"
            ) from err

    def get_happ_release_hash(self, app_id: str) -> Optional[str]:
        """The stored happ release hash of an app, if any."""
        try:
            return (app_data_dir(self.environment_path, app_id) / ".happrelease").read_text()
        except OSError:
            return None

    def get_gui_release_hash(self, app_id: str, ui_name: str) -> Optional[str]:
        """The stored GUI release hash of an app UI, if any."""
        try:
            return (app_ui_dir(self.environment_path, app_id, ui_name) / ".guirelease").read_text()
        except OSError:
            return None