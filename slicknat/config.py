"""
Daemon configuration.

The configuration is a YAML file::

    listen:
      - address: "::1"
        port: 7001
      - address: "2001:db8::1"
        port: 7001
    mapping_path: /proc/net/slick_nat_mappings
    log_level: info
    refresh_interval: 5

A missing or broken file is not fatal: the daemon falls back to a single
listener on [::1]:7001.

Environment variables override the file:
  SLNAT_CONFIG_FILE    Path of the YAML file
  SLNAT_MAPPING_PATH   Mapping source path
  SLNAT_LOG_LEVEL      error, warning, info or debug
"""

import ipaddress
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigError
from .store import DEFAULT_REFRESH_INTERVAL

DEFAULT_CONFIG_PATH = "/etc/slnatcd/config.yaml"
DEFAULT_MAPPING_PATH = "/proc/net/slick_nat_mappings"
DEFAULT_LISTEN_ADDRESS = "::1"
DEFAULT_PORT = 7001
DEFAULT_LOG_LEVEL = "info"

LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

KNOWN_KEYS = {"listen", "mapping_path", "proc_path", "log_level", "refresh_interval"}

logger = logging.getLogger(__name__)


@dataclass
class ListenAddress:
    """One ``[address]:port`` the daemon accepts connections on."""
    address: str
    port: int

    def __str__(self):
        return f"[{self.address}]:{self.port}"


def default_listen() -> List[ListenAddress]:
    return [ListenAddress(DEFAULT_LISTEN_ADDRESS, DEFAULT_PORT)]


@dataclass
class DaemonConfig:
    listen: List[ListenAddress] = field(default_factory=default_listen)
    mapping_path: str = DEFAULT_MAPPING_PATH
    log_level: str = DEFAULT_LOG_LEVEL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL

    @property
    def level(self) -> int:
        return parse_log_level(self.log_level)


def parse_log_level(level: Optional[str]) -> int:
    """Map a level name to a ``logging`` level; unknown names mean INFO."""
    if not level:
        return logging.INFO
    return LOG_LEVELS.get(str(level).strip().lower(), logging.INFO)


def parse_listen_entry(entry: Any) -> ListenAddress:
    """
    Validate one ``listen`` item.

    Accepted forms are a mapping ``{address: ..., port: ...}`` or a string
    ``"<address> <port>"``.

    Raises:
        ValueError: if the entry is malformed.
    """
    if isinstance(entry, dict):
        address = entry.get('address')
        port = entry.get('port', DEFAULT_PORT)
    elif isinstance(entry, str) and len(entry.split()) == 2:
        address, port = entry.split()
    else:
        raise ValueError(f"expected 'address' and 'port', got {entry!r}")

    if not address:
        raise ValueError("missing address")
    address = str(address).strip().strip('[]')
    try:
        ipaddress.IPv6Address(address)
    except ipaddress.AddressValueError as e:
        raise ValueError(f"invalid IPv6 address {address!r}") from e

    if isinstance(port, bool):
        raise ValueError(f"invalid port {port!r}")
    try:
        port = int(port)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid port {port!r}") from e
    if not 0 <= port <= 65535:
        raise ValueError(f"port {port} is out of range [0, 65535]")

    return ListenAddress(address, port)


def config_from_dict(data: Dict[str, Any]) -> DaemonConfig:
    """Build a DaemonConfig from parsed YAML, skipping bad listen entries."""
    config = DaemonConfig()

    for key in data:
        if key not in KNOWN_KEYS:
            logger.warning(f"Unknown config directive: {key}")

    listen_items = data.get('listen') or []
    if not isinstance(listen_items, list):
        listen_items = [listen_items]

    listen: List[ListenAddress] = []
    for item in listen_items:
        try:
            entry = parse_listen_entry(item)
        except ValueError as e:
            logger.error(f"Error parsing listen entry {item!r}: {e}")
            continue
        listen.append(entry)
        logger.info(f"Config: Will listen on {entry}")

    if listen:
        config.listen = listen
    else:
        logger.warning("No valid listen configurations found, using default")

    mapping_path = data.get('mapping_path') or data.get('proc_path')
    if mapping_path:
        config.mapping_path = str(mapping_path)
        logger.info(f"Config: Using mapping path: {config.mapping_path}")

    if data.get('log_level'):
        config.log_level = str(data['log_level'])
        if str(data['log_level']).strip().lower() not in LOG_LEVELS:
            logger.warning(f"Unknown log level '{data['log_level']}', using info")

    if data.get('refresh_interval') is not None:
        try:
            interval = float(data['refresh_interval'])
        except (TypeError, ValueError):
            interval = 0
        if interval > 0:
            config.refresh_interval = interval
        else:
            logger.warning(
                f"Invalid refresh_interval {data['refresh_interval']!r}, "
                f"using {DEFAULT_REFRESH_INTERVAL}"
            )

    return config


def load_config(config_path: str) -> DaemonConfig:
    """
    Load the daemon configuration from a YAML file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        The parsed configuration.

    Raises:
        ConfigError: if the file is missing, unreadable, not YAML, empty or
            not a mapping.
    """
    logger.info(f"Loading configuration from {config_path}")

    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not data:
        raise ConfigError(f"Config file is empty: {config_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")

    return config_from_dict(data)


def load_config_or_default(config_path: str) -> DaemonConfig:
    """Like ``load_config`` but falls back to the built-in defaults."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        logger.warning(str(e))
        logger.info("Using default configuration")
        return DaemonConfig()


def apply_env_overrides(config: DaemonConfig, environ: Optional[Mapping[str, str]] = None) -> DaemonConfig:
    """Apply SLNAT_MAPPING_PATH and SLNAT_LOG_LEVEL on top of ``config``."""
    environ = os.environ if environ is None else environ

    if environ.get('SLNAT_MAPPING_PATH'):
        config.mapping_path = environ['SLNAT_MAPPING_PATH']
    if environ.get('SLNAT_LOG_LEVEL'):
        config.log_level = environ['SLNAT_LOG_LEVEL']
    return config
