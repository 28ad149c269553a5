"""
Configuration management for YouSonos.

Defaults ship in `defaults.toml` next to this module. A user TOML file may
override any subset of keys; the merged result is validated into AppConfig.

The one piece of state that survives restarts (the last selected speaker)
is kept separately by StateStore, since it is written at runtime.
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from yousonos.core import YouSonosError

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

DEFAULTS_PATH = CONFIG_DIR / "defaults.toml"

ACTIVE_DEVICE_KEY = "active_device"


class ConfigError(YouSonosError):
    """Raised when a configuration file is missing, malformed, or invalid."""


@dataclass
class BridgeConfig:
    """Redirect server settings."""

    host: str = "0.0.0.0"
    port: int = 9372
    advertise_address: str | None = None


@dataclass
class DiscoveryConfig:
    """SSDP discovery settings."""

    service_type: str = "urn:schemas-upnp-org:device:ZonePlayer:1"
    window_seconds: float = 2.0


@dataclass
class ControlConfig:
    """SOAP control settings."""

    timeout_seconds: float = 10.0


@dataclass
class ResolverConfig:
    """Metadata resolver settings."""

    invidious_base_url: str = "https://invidious.namazso.eu"


@dataclass
class AppConfig:
    """Loaded application configuration."""

    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    control: ControlConfig = field(default_factory=ControlConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    state_path: Path = Path("~/.config/yousonos/state.json").expanduser()


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _positive_number(section: str, key: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{section}.{key} must be a positive number, got {value!r}")
    return float(value)


def _parse_config(data: dict[str, Any]) -> AppConfig:
    """Validate merged TOML data into an AppConfig."""
    bridge = _section(data, "bridge")
    discovery = _section(data, "discovery")
    control = _section(data, "control")
    resolver = _section(data, "resolver")
    state = _section(data, "state")

    port = bridge.get("port", 9372)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigError(f"bridge.port must be a TCP port, got {port!r}")

    service_type = str(discovery.get("service_type", "")).strip()
    if not service_type:
        raise ConfigError("discovery.service_type must not be empty")

    base_url = str(resolver.get("invidious_base_url", "")).strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"resolver.invidious_base_url must be an http(s) URL, got {base_url!r}")

    return AppConfig(
        bridge=BridgeConfig(
            host=str(bridge.get("host", "0.0.0.0")),
            port=port,
            advertise_address=str(bridge.get("advertise_address") or "") or None,
        ),
        discovery=DiscoveryConfig(
            service_type=service_type,
            window_seconds=_positive_number(
                "discovery", "window_seconds", discovery.get("window_seconds", 2.0)
            ),
        ),
        control=ControlConfig(
            timeout_seconds=_positive_number(
                "control", "timeout_seconds", control.get("timeout_seconds", 10.0)
            ),
        ),
        resolver=ResolverConfig(invidious_base_url=base_url),
        state_path=Path(str(state.get("path", "~/.config/yousonos/state.json"))).expanduser(),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Load configuration, applying a user file over the shipped defaults.

    Args:
        config_path: Optional user TOML file.

    Returns:
        Loaded AppConfig instance.

    Raises:
        ConfigError: If a file is unreadable or a value is invalid.
    """
    logger.debug("Loading default config from %s", DEFAULTS_PATH)
    data = _read_toml(DEFAULTS_PATH)

    if config_path is not None:
        logger.debug("Loading user config from %s", config_path)
        data = _merge(data, _read_toml(config_path))

    return _parse_config(data)


# Global singleton instance (lazy loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The AppConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


class StateStore:
    """
    Small JSON key-value file persisted across runs.

    Only the active speaker name is stored today. Read and write failures
    are logged and never fatal: losing the remembered speaker just means the
    user picks it again.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read state file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self.path)
            return {}
        return data

    def get(self, key: str, default: str = "") -> str:
        value = self._load().get(key, default)
        return value if isinstance(value, str) else default

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save state file %s: %s", self.path, e)
            return
        logger.debug("Saved %s to %s", key, self.path)

    @property
    def active_device(self) -> str:
        """Name of the last selected speaker, or empty."""
        return self.get(ACTIVE_DEVICE_KEY)

    @active_device.setter
    def active_device(self, name: str) -> None:
        self.set(ACTIVE_DEVICE_KEY, name)
