import io
import sys
import zipfile
from pathlib import Path

import pytest
import yaml

from hclauncher.config import LaunchHolochainConfig
from hclauncher.errors import LaunchChildError, LaunchWebAppManagerError
from hclauncher.holochain_manager import HolochainManager
from hclauncher.installed_web_app_info import HeadlessUi, WebAppUi
from hclauncher.versions import HolochainVersion
from hclauncher.web_app_manager import (
    StorageInfo,
    WebAppManager,
    app_assets_dir,
    app_data_dir,
    app_local_storage_dir,
    app_ui_dir,
    apps_data_dir,
    conductor_dir,
    directory_size,
)


def make_zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class FakeAdmin:
    def __init__(self, interfaces=(7000,)):
        self.interfaces = list(interfaces)
        self.apps = []
        self.fail_install = False
        self.closed = False
        self.enabled = []
        self.disabled = []
        self.deleted = []

    async def list_app_interfaces(self):
        return self.interfaces

    async def attach_app_interface(self, port):
        self.interfaces.append(port)

    async def generate_agent_pub_key(self):
        return "agent"

    async def install_app(self, payload):
        Path(payload["source"]["path"]).unlink(missing_ok=True)
        if self.fail_install:
            raise ValueError("bundle rejected")
        self.apps.append({"installed_app_id": payload["installed_app_id"]})

    async def enable_app(self, app_id):
        self.enabled.append(app_id)

    async def disable_app(self, app_id):
        self.disabled.append(app_id)

    async def uninstall_app(self, app_id):
        self.apps = [a for a in self.apps if a["installed_app_id"] != app_id]

    async def delete_clone_cell(self, payload):
        self.deleted.append(payload)

    async def list_apps(self, status_filter=None):
        return [dict(a) for a in self.apps]

    def close(self):
        self.closed = True


class FakeProcess:
    def __init__(self):
        self.killed = False

    def kill(self):
        self.killed = True


@pytest.fixture
def admin():
    return FakeAdmin()


@pytest.fixture
def manager(tmp_path, admin):
    apps_data_dir(tmp_path).mkdir(parents=True)
    holochain = HolochainManager(HolochainVersion.V0_1_3, 6000, 7000, admin, FakeProcess())
    return WebAppManager(tmp_path, holochain)


def test_path_layout(tmp_path):
    assert apps_data_dir(tmp_path) == tmp_path / "apps"
    assert app_data_dir(tmp_path, "a") == tmp_path / "apps" / "a"
    assert app_ui_dir(tmp_path, "a", "default") == tmp_path / "apps" / "a" / "uis" / "default"
    assert app_assets_dir(tmp_path, "a", "default") == app_ui_dir(tmp_path, "a", "default") / "assets"
    assert app_local_storage_dir(tmp_path, "a", "default") == app_ui_dir(tmp_path, "a", "default") / "tauri"
    assert conductor_dir(tmp_path) == tmp_path / "conductor"


def test_manager_dir_accessors(manager, tmp_path):
    assert manager.get_app_assets_dir("a", "default") == app_assets_dir(tmp_path, "a", "default")
    assert manager.get_app_local_storage_dir("a", "default") == app_local_storage_dir(tmp_path, "a", "default")


def test_directory_size_counts_files(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.bin").write_bytes(b"abc")
    (tmp_path / "sub" / "b.bin").write_bytes(b"hello")
    assert directory_size(tmp_path) == len(b"abc") + len(b"hello")
    assert directory_size(tmp_path / "a.bin") == len(b"abc")


def test_directory_size_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        directory_size(tmp_path / "missing")


@pytest.mark.asyncio
async def test_install_web_app(manager, tmp_path):
    zip_bytes = make_zip({"index.html": "<p>hi</p>", "js/app.js": "x"})
    await manager.install_web_app("forum", b"bundle", zip_bytes, None, {}, None, "hrel", "grel")

    assets = app_assets_dir(tmp_path, "forum", "default")
    assert (assets / "index.html").read_text() == "<p>hi</p>"
    assert (assets / "js" / "app.js").read_text() == "x"
    assert not (apps_data_dir(tmp_path) / "forum.zip").exists()

    apps = await manager.list_apps()
    assert len(apps) == 1
    info = apps[0]
    assert info.happ_release_hash == "hrel"
    ui = info.web_uis["default"]
    assert isinstance(ui, WebAppUi)
    assert ui.path_to_ui == assets
    assert ui.gui_release_hash == "grel"
    assert ui.app_ui_port == manager.get_allocated_port("forum")


@pytest.mark.asyncio
async def test_install_web_app_requires_both_hashes(manager, tmp_path):
    with pytest.raises(RuntimeError, match="Got only one of gui_release_hash"):
        await manager.install_web_app("forum", b"b", make_zip({"index.html": "x"}), happ_release_hash="h")
    assert not app_data_dir(tmp_path, "forum").exists()


@pytest.mark.asyncio
async def test_failed_install_removes_app_data(manager, admin, tmp_path):
    admin.fail_install = True
    with pytest.raises(RuntimeError, match="Error install hApp bundle"):
        await manager.install_web_app("forum", b"b", make_zip({"index.html": "x"}))
    assert not app_data_dir(tmp_path, "forum").exists()
    assert await manager.list_apps() == []


@pytest.mark.asyncio
async def test_headless_install(manager):
    await manager.install_app("headless", b"b", happ_release_hash="hrel")
    apps = await manager.list_apps()
    assert apps[0].web_uis == {"default": HeadlessUi()}
    assert apps[0].happ_release_hash == "hrel"
    assert manager.get_allocated_port("headless") is None


@pytest.mark.asyncio
async def test_uninstall_removes_data_and_port(manager, tmp_path):
    await manager.install_web_app("forum", b"b", make_zip({"index.html": "x"}))
    assert manager.get_allocated_port("forum") is not None
    await manager.uninstall_app("forum")
    assert not app_data_dir(tmp_path, "forum").exists()
    assert manager.get_allocated_port("forum") is None
    assert await manager.list_apps() == []


@pytest.mark.asyncio
async def test_enable_disable_delete_clone(manager, admin):
    await manager.install_app("app", b"b")
    await manager.disable_app("app")
    await manager.enable_app("app")
    await manager.delete_clone("app", "cell")
    assert admin.disabled == ["app"]
    assert admin.enabled[-1] == "app"
    assert admin.deleted == [{"app_id": "app", "clone_cell_id": "cell"}]
    apps = await manager.list_apps()
    assert len(apps) == 1
    assert apps[0].web_uis == {"default": HeadlessUi()}
    assert apps[0].happ_release_hash is None
    assert manager.get_allocated_port("app") is None


@pytest.mark.asyncio
async def test_update_app_ui_replaces_assets(manager, tmp_path):
    await manager.install_web_app("forum", b"b", make_zip({"index.html": "old", "old.js": "o"}))
    manager.update_app_ui("forum", make_zip({"index.html": "new"}), "default", "grel2")
    assets = app_assets_dir(tmp_path, "forum", "default")
    assert (assets / "index.html").read_text() == "new"
    assert not (assets / "old.js").exists()
    assert not (app_ui_dir(tmp_path, "forum", "default") / "assets_temp_backup").exists()
    assert manager.get_gui_release_hash("forum", "default") == "grel2"


@pytest.mark.asyncio
async def test_update_app_ui_restores_on_failure(manager, tmp_path):
    await manager.install_web_app("forum", b"b", make_zip({"index.html": "old"}))
    with pytest.raises(RuntimeError):
        manager.update_app_ui("forum", b"not a zip archive", "default")
    assets = app_assets_dir(tmp_path, "forum", "default")
    assert (assets / "index.html").read_text() == "old"
    assert not (app_ui_dir(tmp_path, "forum", "default") / "assets_temp_backup").exists()


def test_update_app_ui_without_assets_fails(manager):
    with pytest.raises(RuntimeError, match="temporary backup location"):
        manager.update_app_ui("ghost", make_zip({"index.html": "x"}), "default")


def test_happ_release_hash_keeps_previous(manager, tmp_path):
    assert manager.get_happ_release_hash("app") is None
    manager.store_happ_release_hash("first", "app")
    manager.store_happ_release_hash("second", "app")
    assert manager.get_happ_release_hash("app") == "second"
    assert (app_data_dir(tmp_path, "app") / ".happrelease.previous").read_text() == "first"


def test_gui_release_hash_keeps_previous(manager, tmp_path):
    assert manager.get_gui_release_hash("app", "default") is None
    manager.store_gui_release_hash("first", "app", "default")
    manager.store_gui_release_hash("second", "app", "default")
    assert manager.get_gui_release_hash("app", "default") == "second"
    assert (app_data_dir(tmp_path, "app") / ".guirelease.previous").read_text() == "first"


def test_storage_info(manager, tmp_path):
    with pytest.raises(RuntimeError, match="conductor directory size"):
        manager.get_storage_info()
    for name in ("authored", "cache", "conductor", "dht", "p2p", "wasm"):
        (conductor_dir(tmp_path) / name).mkdir(parents=True)
    (conductor_dir(tmp_path) / "dht" / "db").write_bytes(b"12345")
    (apps_data_dir(tmp_path) / "f").write_bytes(b"ab")
    assert manager.get_storage_info() == StorageInfo(
        uis=len(b"ab"), authored=0, cache=0, conductor=0, dht=len(b"12345"), p2p=0, wasm=0
    )


def test_ports_and_kill(manager, admin):
    assert manager.admin_interface_port() == 6000
    assert manager.app_interface_port() == 7000
    manager.kill()
    assert admin.closed
    assert manager.holochain_manager.process.killed


def _config(tmp_path, command):
    return LaunchHolochainConfig(
        log_level="INFO",
        admin_port=6100,
        command=command,
        conductor_config_dir=tmp_path / "cfg",
        environment_path=tmp_path / "env",
        keystore_connection_url="unix:///tmp/lair-socket",
    )


@pytest.mark.asyncio
async def test_launch_with_missing_binary(tmp_path):
    password = "password"

    async def connect(url):
        return FakeAdmin()

    config = _config(tmp_path, [str(tmp_path / "no-such-holochain-binary")])
    with pytest.raises(LaunchWebAppManagerError, match="Error launching Holochain") as excinfo:
        await WebAppManager.launch(HolochainVersion.V0_1_3, config, password, connect)
    assert isinstance(excinfo.value.cause, LaunchChildError)
    assert (tmp_path / "env" / "apps").is_dir()
    assert (tmp_path / "env" / "conductor").is_dir()


@pytest.mark.asyncio
async def test_launch_runs_conductor(tmp_path):
    password = "password"
    admin = FakeAdmin(interfaces=[7100])
    urls = []

    async def connect(url):
        urls.append(url)
        return admin

    script = (
        "import sys, time; sys.stdin.readline(); "
        "print('Conductor ready.', flush=True); time.sleep(30)"
    )
    config = _config(tmp_path, [sys.executable, "-c", script])
    manager = await WebAppManager.launch(HolochainVersion.V0_1_3, config, password, connect)
    try:
        assert urls == ["ws://localhost:6100"]
        assert manager.admin_interface_port() == 6100
        assert manager.app_interface_port() == 7100
        written = yaml.safe_load((tmp_path / "cfg" / "conductor-config.yaml").read_text())
        assert written["environment_path"] == str(tmp_path / "env" / "conductor")
        assert await manager.list_apps() == []
    finally:
        manager.kill()
        await manager.holochain_manager.process.wait()
    assert admin.closed