"""Run Holochain conductors and manage installed apps and their web UIs."""

__version__ = "0.1.0"
__all__ = [
    "config",
    "errors",
    "files",
    "holochain_manager",
    "installed_web_app_info",
    "launch",
    "ui_assets",
    "versions",
    "web_app_manager",
]