"""Configuration loading from CLI args, env vars, and an optional YAML file.

Precedence: CLI flag > environment variable > YAML file > built-in default.
"""

import logging
import os
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = 8080
    buffer_size: int = 10000
    subscriber_queue_size: int = 256
    intake_queue_size: int = 256
    open_browser: bool = True
    log_level: str = "INFO"


# Config field -> (env var, YAML section, YAML key)
_SOURCES = {
    "host": ("LOGPEEK_HOST", "server", "host"),
    "port": ("LOGPEEK_PORT", "server", "port"),
    "buffer_size": ("LOGPEEK_BUFFER", "buffer", "size"),
    "subscriber_queue_size": ("LOGPEEK_SUBSCRIBER_QUEUE", "hub", "subscriber_queue_size"),
    "intake_queue_size": ("LOGPEEK_INTAKE_QUEUE", "hub", "intake_queue_size"),
    "log_level": ("LOGPEEK_LOG_LEVEL", "logging", "level"),
}


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s, using defaults: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data


def _yaml_value(yaml_data: dict, section: str, key: str):
    block = yaml_data.get(section)
    if isinstance(block, dict):
        return block.get(key)
    return None


def _resolve(name: str, cli_args, yaml_data: dict):
    """Pick the highest-precedence value for one Config field, or None."""
    cli_value = getattr(cli_args, name, None)
    if cli_value is not None:
        return cli_value
    env_var, section, key = _SOURCES[name]
    env_value = os.environ.get(env_var)
    if env_value is not None:
        return env_value
    return _yaml_value(yaml_data, section, key)


def load_config(cli_args=None, yaml_data: dict | None = None) -> Config:
    """Build Config from CLI args, env vars, and parsed YAML data.

    Raises ValueError for non-integer sizes/ports or sizes below 1.
    """
    yaml_data = yaml_data or {}
    values = {}
    for name in _SOURCES:
        value = _resolve(name, cli_args, yaml_data)
        if value is not None:
            values[name] = value

    for name in ("port", "buffer_size", "subscriber_queue_size", "intake_queue_size"):
        if name in values:
            values[name] = int(values[name])
            if values[name] < (0 if name == "port" else 1):
                raise ValueError(f"{name} out of range: {values[name]}")

    if "host" in values:
        values["host"] = str(values["host"])
    if "log_level" in values:
        values["log_level"] = str(values["log_level"]).upper()
    if getattr(cli_args, "no_open", False):
        values["open_browser"] = False

    return Config(**values)
