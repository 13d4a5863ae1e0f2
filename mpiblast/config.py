"""Runtime configuration for the relay roles.

Settings come from three layers, later ones winning:

1. defaults from :mod:`mpiblast.protocol`
2. an optional YAML file named by ``MPIBLAST_CONFIG``
3. ``MPIBLAST_*`` environment variables

The command line belongs to the search tool, so nothing here is read from it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from mpiblast import protocol
from mpiblast.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MPIBLAST_CONFIG"

TRANSPORTS = ("mpi", "local")
TRANSPORT_ERROR_MODES = ("fatal", "log")

ENV_VARS = {
    "block_size": "MPIBLAST_BLOCK_SIZE",
    "fragment_size": "MPIBLAST_FRAGMENT_SIZE",
    "read_size": "MPIBLAST_READ_SIZE",
    "max_line_length": "MPIBLAST_MAX_LINE_LENGTH",
    "header_sentinel": "MPIBLAST_SENTINEL",
    "transport": "MPIBLAST_TRANSPORT",
    "local_workers": "MPIBLAST_LOCAL_WORKERS",
    "transport_errors": "MPIBLAST_TRANSPORT_ERRORS",
    "abort_on_fatal": "MPIBLAST_ABORT_ON_FATAL",
}

_INT_KEYS = ("block_size", "fragment_size", "read_size", "max_line_length", "local_workers")
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class RelayConfig:
    """Tunables shared by every role of one run."""

    block_size: int = protocol.DEFAULT_BLOCK_SIZE
    fragment_size: int = protocol.DEFAULT_FRAGMENT_SIZE
    read_size: int = protocol.DEFAULT_READ_SIZE
    max_line_length: int = protocol.DEFAULT_MAX_LINE_LENGTH
    header_sentinel: bytes = protocol.HEADER_SENTINEL
    transport: str = "mpi"
    local_workers: int = 2
    transport_errors: str = "fatal"
    abort_on_fatal: bool = True

    @property
    def strict_transport(self) -> bool:
        return self.transport_errors == "fatal"

    def validate(self, config_path: Optional[str] = None) -> "RelayConfig":
        for key in _INT_KEYS:
            value = getattr(self, key)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigValidationError(
                    f"'{key}' must be a positive integer, got {value!r}",
                    config_path=config_path,
                    key=key,
                )
        if len(self.header_sentinel) != 1:
            raise ConfigValidationError(
                f"'header_sentinel' must be a single byte, got {self.header_sentinel!r}",
                config_path=config_path,
                key="header_sentinel",
            )
        if self.transport not in TRANSPORTS:
            raise ConfigValidationError(
                f"'transport' must be one of {list(TRANSPORTS)}, got {self.transport!r}",
                config_path=config_path,
                key="transport",
            )
        if self.transport_errors not in TRANSPORT_ERROR_MODES:
            raise ConfigValidationError(
                f"'transport_errors' must be one of {list(TRANSPORT_ERROR_MODES)}, "
                f"got {self.transport_errors!r}",
                config_path=config_path,
                key="transport_errors",
            )
        return self


def _coerce(key: str, value: Any, config_path: Optional[str]) -> Any:
    if key in _INT_KEYS:
        if isinstance(value, bool):
            raise ConfigValidationError(f"'{key}' must be an integer", config_path=config_path, key=key)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(
                f"'{key}' must be an integer, got {value!r}", config_path=config_path, key=key
            )
    if key == "header_sentinel":
        try:
            return value.encode("ascii") if isinstance(value, str) else bytes(value)
        except (UnicodeEncodeError, TypeError, ValueError):
            raise ConfigValidationError(
                f"'{key}' must be a single ASCII character, got {value!r}", config_path=config_path, key=key
            )
    if key == "abort_on_fatal":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigValidationError(
            f"'{key}' must be a boolean, got {value!r}", config_path=config_path, key=key
        )
    return str(value).strip().lower()


def _read_yaml(path: str) -> Dict[str, Any]:
    logger.info(f"Loading relay config from {path}")

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(f"Config file not found: {path}", config_path=path)

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in config file: {e}", config_path=path)

    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigValidationError("Config must be a YAML dictionary/object", config_path=path)

    # Allow the settings to live under a 'relay' section of a larger file
    section = cfg.get("relay", cfg)
    if not isinstance(section, dict):
        raise ConfigValidationError("'relay' must be a dictionary", config_path=path, key="relay")
    return section


def apply_overrides(
    base: RelayConfig, overrides: Mapping[str, Any], config_path: Optional[str] = None
) -> RelayConfig:
    """Return ``base`` with ``overrides`` applied; unknown keys are rejected."""
    known = {f.name for f in fields(RelayConfig)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigValidationError(f"Unknown config key '{key}'", config_path=config_path, key=key)
        changes[key] = _coerce(key, value, config_path)
    return replace(base, **changes)


def overrides_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    return {key: environ[var] for key, var in ENV_VARS.items() if environ.get(var)}


def load_config(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> RelayConfig:
    """Build and validate the relay configuration.

    Args:
        path: YAML file to read; defaults to ``$MPIBLAST_CONFIG`` when set
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated RelayConfig

    Raises:
        ConfigValidationError: If the file or any value is invalid
    """
    environ = os.environ if environ is None else environ
    if path is None:
        path = environ.get(CONFIG_ENV_VAR) or None

    config = RelayConfig()
    if path:
        config = apply_overrides(config, _read_yaml(path), config_path=path)
    config = apply_overrides(config, overrides_from_env(environ))
    config.validate(config_path=path)

    logger.debug(f"Relay config: {config}")
    return config
