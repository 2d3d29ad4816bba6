"""Supported conductor versions and the conductor configuration each one uses."""

from __future__ import annotations

import enum
from pathlib import Path

import yaml


def proxy_url() -> str:
    """The proxy server that new conductors connect through."""
    return (
        "kitsune-proxy://f3gH2VMkJ4qvZJOXx0ccL_Zo5n-s_CnBjSzAsEHHDCA/"
        "kitsune-quic/h/137.184.142.208/p/5788/--"
    )


def bootstrap_service() -> str:
    """The bootstrap service that new conductors use."""
    return "https://bootstrap.holo.host"


class HdkVersion(str, enum.Enum):
    """HDK releases bundled with a conductor version."""

    V0_1_1 = "0.1.1"

    def __str__(self) -> str:
        return self.value


class HdiVersion(str, enum.Enum):
    """HDI releases bundled with a conductor version."""

    V0_2_1 = "0.2.1"

    def __str__(self) -> str:
        return self.value


class HolochainVersion(str, enum.Enum):
    """Conductor versions the launcher can run."""

    CUSTOM_BINARY = "Custom Binary"
    V0_1_3 = "0.1.3"

    def __str__(self) -> str:
        return self.value

    @staticmethod
    def custom() -> "HolochainVersion":
        """The version used when a custom binary is supplied."""
        return HolochainVersion.CUSTOM_BINARY

    @staticmethod
    def default() -> "HolochainVersion":
        """The version started by default."""
        return HolochainVersion.V0_1_3

    @staticmethod
    def latest() -> "HolochainVersion":
        """The newest supported version."""
        return HolochainVersion.V0_1_3

    @staticmethod
    def supported_versions() -> list["HolochainVersion"]:
        """All released versions that can be run."""
        return [HolochainVersion.V0_1_3]

    def minor_version(self) -> str:
        """The major and minor part, e.g. ``0.1`` for ``0.1.3``; ``custom`` for a custom binary."""
        if self is HolochainVersion.CUSTOM_BINARY:
            return "custom"
        major, minor, *_ = self.value.split(".")
        return f"{major}.{minor}"

    def manager(self) -> "VersionManager":
        """The version manager that knows how to configure this version."""
        # A custom binary is assumed to behave like the latest version.
        return _V0_1_3_MANAGER


class VersionManager:
    """Builds and updates conductor configuration for one conductor version."""

    def __init__(self, hdk_version: HdkVersion, hdi_version: HdiVersion) -> None:
        self._hdk_version = hdk_version
        self._hdi_version = hdi_version

    def hdk_version(self) -> HdkVersion:
        """The HDK version bundled with this conductor."""
        return self._hdk_version

    def hdi_version(self) -> HdiVersion:
        """The HDI version bundled with this conductor."""
        return self._hdi_version

    def lair_keystore_version(self) -> str:
        """The keystore version this conductor runs with."""
        return "0.2"

    def initial_config(self, admin_port, conductor_environment_path, keystore_connection_url) -> str:
        """A fresh conductor configuration as YAML."""
        network = {
            "network_type": "quic_bootstrap",
            "bootstrap_service": bootstrap_service(),
            "transport_pool": [
                {
                    "type": "proxy",
                    "sub_transport": {
                        "type": "quic",
                        "bind_to": None,
                        "override_host": None,
                        "override_port": None,
                    },
                    "proxy_config": {
                        "type": "remote_proxy_client",
                        "proxy_url": proxy_url(),
                    },
                }
            ],
        }
        config = {
            "environment_path": str(Path(conductor_environment_path)),
            "dpki": None,
            "keystore": _keystore_section(keystore_connection_url),
            "admin_interfaces": _admin_interfaces_section(admin_port),
            "network": network,
            "db_sync_strategy": "Fast",
            "chc_namespace": None,
        }
        return yaml.safe_dump(config, sort_keys=False)

    def overwrite_config(self, conductor_config, admin_port, keystore_connection_url) -> str:
        """Replace the admin interface and keystore of an existing YAML configuration."""
        try:
            config = yaml.safe_load(conductor_config)
        except yaml.YAMLError as err:
            raise ValueError(f"Couldn't convert string to conductor config: {err}") from err
        if not isinstance(config, dict):
            raise ValueError("Couldn't convert string to conductor config: not a mapping")
        config["admin_interfaces"] = _admin_interfaces_section(admin_port)
        config["keystore"] = _keystore_section(keystore_connection_url)
        return yaml.safe_dump(config, sort_keys=False)


def _admin_interfaces_section(admin_port) -> list:
    return [{"driver": {"type": "websocket", "port": int(admin_port)}}]


def _keystore_section(keystore_connection_url) -> dict:
    return {"type": "lair_server", "connection_url": str(keystore_connection_url)}


_V0_1_3_MANAGER = VersionManager(HdkVersion.V0_1_1, HdiVersion.V0_2_1)