"""Descriptions of installed apps together with their user interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class HeadlessUi:
    """An app that comes without a user interface."""

    def to_dict(self) -> dict:
        """The serialised form, tagged by ``type``."""
        return {"type": "Headless"}


@dataclass(frozen=True)
class WebAppUi:
    """An app whose UI assets are installed on disk and served on a port."""

    path_to_ui: Path
    app_ui_port: int
    gui_release_hash: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path_to_ui", Path(self.path_to_ui))
        object.__setattr__(self, "app_ui_port", int(self.app_ui_port))

    def to_dict(self) -> dict:
        """The serialised form, tagged by ``type``."""
        return {
            "type": "WebApp",
            "path_to_ui": str(self.path_to_ui),
            "app_ui_port": self.app_ui_port,
            "gui_release_hash": self.gui_release_hash,
        }


WebUiInfo = Union[HeadlessUi, WebAppUi]


@dataclass
class InstalledWebAppInfo:
    """An installed app, its release hash and its UIs keyed by UI name."""

    installed_app_info: Any
    happ_release_hash: Optional[str] = None
    web_uis: Dict[str, WebUiInfo] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """A JSON-ready dictionary of this record."""
        return {
            "installed_app_info": self.installed_app_info,
            "happ_release_hash": self.happ_release_hash,
            "web_uis": {name: ui.to_dict() for name, ui in self.web_uis.items()},
        }