"""What an app window needs: its URL, start-up scripts and served UI assets."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_APP_ORIGIN = "tauri://localhost"
_ASSET_PREFIX = "tauri://localhost/"
_MIME_TYPES = mimetypes.MimeTypes()


@dataclass(frozen=True)
class UIPath:
    """UI assets served from a folder on disk."""

    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))


@dataclass(frozen=True)
class UIPort:
    """UI served by a development server on localhost."""

    port: int

    def __post_init__(self) -> None:
        if not 0 <= int(self.port) <= 0xFFFF:
            raise ValueError(f"port out of range: {self.port}")
        object.__setattr__(self, "port", int(self.port))


@dataclass(frozen=True)
class WebResource:
    """A response body for a window request, with its MIME type if known."""

    body: bytes
    mimetype: str | None


def launcher_env_script(app_port, admin_port, app_id) -> str:
    """Script that exposes the interface ports and app id to the UI."""
    return (
        "window.__HC_LAUNCHER_ENV__ = {\n"
        f'    "APP_INTERFACE_PORT": {app_port},\n'
        f'    "ADMIN_INTERFACE_PORT": {admin_port},\n'
        f'    "INSTALLED_APP_ID": "{app_id}"\n'
        "  }"
    )


_CLICK_HEAD = """window.addEventListener("click", (e) => {
    const maybeHref = e.composedPath()[0].href;

    if (maybeHref) {
      if ( (maybeHref.startsWith('http://') || maybeHref.startsWith('https://')) && !(maybeHref.includes("tauri.localhost")) ) {
        e.preventDefault();
        window.__TAURI_INVOKE__('open_url_cmd', { 'url': maybeHref } )
      }
"""

_DATA_DOWNLOAD_GUARD = """
      if (maybeHref.startsWith('data:')) {
        e.preventDefault();
        alert("We use Tauri to securely display Holochain apps. For macOS, downloading files is currently not supported.");
      }
"""

_CLICK_TAIL = """    }
  });
  """


def anchor_listener_script(macos=None) -> str:
    """Script routing external link clicks to the system browser.

    On macOS it also blocks ``data:`` downloads with a notice. By default
    the running platform decides.
    """
    import sys

    if macos is None:
        macos = sys.platform == "darwin"
    guard = _DATA_DOWNLOAD_GUARD if macos else ""
    return _CLICK_HEAD + guard + _CLICK_TAIL


def window_url(ui_source) -> str:
    """The URL a window opens for the given UI source."""
    if isinstance(ui_source, UIPath):
        return _APP_ORIGIN
    if isinstance(ui_source, UIPort):
        return f"http://localhost:{ui_source.port}/"
    raise TypeError(f"unsupported UI source: {ui_source!r}")


def _read(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except OSError:
        return None


def resolve_web_resource(assets_path, uri: str) -> WebResource | None:
    """The response for a window request, or None when nothing is served.

    Unknown asset files fall back to ``index.html`` so that client-side
    routing keeps working.
    """
    assets_path = Path(assets_path)
    index_path = assets_path / "index.html"

    if uri == _APP_ORIGIN:
        index_html = _read(index_path)
        return None if index_html is None else WebResource(index_html, "text/html")

    if not uri.startswith(_ASSET_PREFIX):
        return None

    asset_file = uri[len(_ASSET_PREFIX):] or "index.html"
    mimetype = _MIME_TYPES.guess_type(asset_file)[0]
    if mimetype is None:
        logger.info("Could not determine MIME Type of file %r", asset_file)

    asset = _read(assets_path / asset_file)
    if asset is not None:
        return WebResource(asset, mimetype)

    index_html = _read(index_path)
    if index_html is None:
        logger.error("Error reading the path of the UI's index.html: %s", index_path)
        return None
    return WebResource(index_html, "text/html")