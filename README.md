# hclauncher

Tools for running a Holochain conductor and managing the apps installed in
it, together with the web UI assets that belong to those apps. The library
is asynchronous and built on `asyncio`.

## Installation

```
pip install hclauncher
```

For running the test suite:

```
pip install "hclauncher[test]"
pytest
```

## Modules

- `hclauncher.versions`: `HolochainVersion` (the custom binary and `0.1.3`,
  with `custom()`, `default()`, `latest()`, `supported_versions()`,
  `minor_version()` and `manager()`), `HdkVersion`, `HdiVersion`, and
  `VersionManager`. `VersionManager.initial_config` produces a fresh
  conductor configuration as YAML; `overwrite_config` replaces the
  `admin_interfaces` and `keystore` sections of an existing YAML
  configuration and raises `ValueError` if it is not a mapping.
  `proxy_url()` and `bootstrap_service()` give the network endpoints written
  into new configurations.
- `hclauncher.config`: `LaunchHolochainConfig`, a frozen dataclass with the
  log level (ERROR, WARN, INFO, DEBUG or TRACE), admin port, command (program
  plus leading arguments), configuration directory, environment path and
  keystore connection URL. `with_environment_path` returns a changed copy.
- `hclauncher.launch`: `launch_holochain_process` starts the conductor with
  `-c <config> -p`, sets `RUST_LOG` and `WASM_LOG`, writes the passphrase to
  its stdin and reads its output until it prints `Conductor ready.` or fails
  in a recognised way; output keeps being logged afterwards. The line
  parsing lives in `ConductorOutputMonitor` (`feed_stdout`, `feed_stderr`,
  `result`) and its `LaunchState`.
- `hclauncher.holochain_manager`: `HolochainManager.launch` writes or updates
  `conductor-config.yaml`, starts the conductor, connects to the admin
  interface (retrying once after five seconds) and attaches an app interface
  on a free port if there is none. It then installs, enables, disables and
  uninstalls apps, deletes clone cells and lists apps. `AdminClient` is the
  protocol the admin connection must follow; `pick_unused_port` finds a free
  local TCP port.
- `hclauncher.web_app_manager`: `WebAppManager` adds web UIs on top of that.
  It keeps data under `<environment>/apps` and the conductor's under
  `<environment>/conductor`, unpacks UI assets per app, keeps happ and GUI
  release hashes (moving the previous one to a `.previous` file), restores the
  old UI if `update_app_ui` fails, allocates a UI port for each web app and
  reports disk usage as `StorageInfo`. Path helpers such as `app_assets_dir`
  and `directory_size` are public.
- `hclauncher.installed_web_app_info`: `InstalledWebAppInfo` with its UIs,
  each a `HeadlessUi` or a `WebAppUi`, and `to_dict` for serialisation.
- `hclauncher.ui_assets`: `UIPath` and `UIPort` UI sources, `window_url`,
  the scripts injected into app windows (`launcher_env_script`,
  `anchor_listener_script`), and `resolve_web_resource`, which maps
  `tauri://localhost/...` requests to files in an app's asset folder,
  falling back to `index.html`, and returns a `WebResource`.
- `hclauncher.files`: `create_dir_if_necessary`, `path_exists`, zip
  extraction that skips entries escaping the target (`unzip_file`) and
  `extract_ui_zip`, which unpacks UI bytes into a fresh `ui` folder.
- `hclauncher.errors`: the exceptions raised by the package, among them
  `LaunchHolochainError` and its subclasses, `InitializeConductorError` and
  its subclasses, `FileSystemError`, `LaunchWebAppManagerError` and
  `HcLaunchError`.

## Examples

Writing a conductor configuration:

```python
from pathlib import Path

from hclauncher.versions import HolochainVersion

manager = HolochainVersion.default().manager()
config_yaml = manager.initial_config(
    8888,
    Path("/tmp/conductor"),
    "unix:///tmp/lair/socket?k=placeholder",
)
print(config_yaml)
```

Serving UI assets for a request made from an app window:

```python
from pathlib import Path

from hclauncher.ui_assets import resolve_web_resource

resource = resolve_web_resource(Path("assets"), "tauri://localhost/main.js")
if resource is not None:
    print(resource.mimetype, len(resource.body))
```

## What it does not do

- There is no command-line program and no window: the package gives the
  URL, scripts and asset responses a window needs, but does not open one.
- It has no admin websocket client of its own. `HolochainManager.launch` and
  `WebAppManager.launch` take a `connect` coroutine function that returns an
  object following `AdminClient`.
- It does not decode `.webhapp` bundles or sign zome calls.
  `WebAppManager.install_web_app` takes the app bundle bytes and the UI zip
  bytes separately.