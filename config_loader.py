"""Configuration loading: TOML parsing, deep merging and built-in defaults."""

from __future__ import annotations

import copy
import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

CONFIG_DIR = '/etc/selene-relay'

DEFAULT_CONFIG: dict[str, Any] = {
    'general': {
        'namespace': 'Se',
        'log_level': 'INFO',
        'console': False,
        'stats_interval': 300,
    },
    'logging': {
        'silent': False,
        'file_level': 'INFO',
        'file': 'relay.log',
        'file_max_bytes': 100 * 1024,
    },
    'serial': {
        'scan_dir': '/dev',
        'patterns': ['ttyUSB*', 'ttyACM*'],
        'baud_rate': 115200,
        'timeout': 0.1,
        'scan_interval': 1.0,
        'autoadd': True,
    },
    'broker': {
        'url': 'mqtt://localhost:1883',
        'keepalive': 60,
        'client_id_prefix': 'selene_',
        'tls_verify': True,
        'shutdown_timeout': 5.0,
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts. override values take precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_toml(path: str | Path) -> dict[str, Any]:
    """Load a single TOML file and return its contents as a dict."""
    with open(path, 'rb') as f:
        return tomllib.load(f)


def _load_config_dir(config: dict[str, Any], config_d: Path) -> dict[str, Any]:
    """Load all *.toml files from a config.d directory as overlays."""
    if not config_d.is_dir():
        return config
    for override_file in sorted(config_d.glob('*.toml')):
        logger.info(f"Loading config override: {override_file}")
        config = deep_merge(config, _load_toml(override_file))
    return config


def load_config(config_paths: list[str] | None = None, config_dir: str = CONFIG_DIR) -> dict[str, Any]:
    """Load and merge TOML configuration over the built-in defaults.

    When no --config paths are provided (default):
      1. Load base config from <config_dir>/config.toml
      2. Overlay files from <config_dir>/config.d/*.toml (alphabetical)

    When --config paths are provided:
      Load only those files in order, each overlaying the previous.
      Default search paths and config.d directories are skipped.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_paths:
        for path in config_paths:
            if not os.path.exists(path):
                logger.error(f"Config file not found: {path}")
                continue
            logger.info(f"Loading config: {path}")
            config = deep_merge(config, _load_toml(path))
        return config

    base_path = os.path.join(config_dir, 'config.toml')
    if os.path.exists(base_path):
        config = deep_merge(config, _load_toml(base_path))
        logger.info(f"Loaded base config from {base_path}")
    else:
        logger.warning(f"Base config not found at {base_path}, using defaults")

    return _load_config_dir(config, Path(config_dir) / 'config.d')


ENV_PREFIX = 'SELENE_'


def _coerce_env_value(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the matching default."""
    value = raw.strip()
    if isinstance(default, bool):
        if value.lower() in ('1', 'true', 'yes', 'on'):
            return True
        if value.lower() in ('0', 'false', 'no', 'off', ''):
            return False
        raise ValueError(f"expected a boolean, got {raw!r}")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        return [item.strip() for item in value.split(',') if item.strip()]
    return value


def apply_env(config: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Overlay SELENE_<SECTION>_<KEY> environment variables, e.g. SELENE_BROKER_URL.

    Only keys present in DEFAULT_CONFIG are recognised. Lists are comma separated.
    """
    if environ is None:
        environ = os.environ

    override: dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        section, _, key = name[len(ENV_PREFIX):].lower().partition('_')
        defaults = DEFAULT_CONFIG.get(section)
        if not isinstance(defaults, dict) or key not in defaults:
            logger.debug(f"Ignoring unknown setting {name}")
            continue
        try:
            value = _coerce_env_value(raw, defaults[key])
        except ValueError as e:
            logger.warning(f"Ignoring {name}: {e}")
            continue
        logger.info(f"Config override from environment: {name}")
        override.setdefault(section, {})[key] = value

    return deep_merge(config, override)


def apply_overrides(
    config: dict[str, Any],
    broker_url: str | None = None,
    baud_rate: int | None = None,
    console: bool | None = None,
) -> dict[str, Any]:
    """Apply command-line overrides on top of the loaded config."""
    override: dict[str, Any] = {}
    if broker_url:
        override['broker'] = {'url': broker_url}
    if baud_rate:
        override['serial'] = {'baud_rate': baud_rate}
    if console:
        override['general'] = {'console': True}
    return deep_merge(config, override)


def log_config_sources(config: dict[str, Any]) -> None:
    """Log configuration summary."""
    general = config.get('general', {})
    serial_cfg = config.get('serial', {})
    broker = config.get('broker', {})

    logger.info(f"Namespace: {general.get('namespace', 'Se')}")
    logger.info(f"Broker: {broker.get('url', 'mqtt://localhost:1883')}")
    logger.info(f"Serial: {serial_cfg.get('scan_dir', '/dev')} {serial_cfg.get('patterns', [])} @ {serial_cfg.get('baud_rate', 115200)} baud")
    logger.debug(f"  autoadd={serial_cfg.get('autoadd', True)} scan_interval={serial_cfg.get('scan_interval', 1.0)}s")
