"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    NOT_FOUND = 3
    INVALID_ARGUMENT = 4
    INTERNAL_ERROR = 5


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LATEST = "latest"
    PROXY_URL = "https://proxy.golang.org"
    DATABASE_URL = "sqlite+aiosqlite:///moddiscovery.db"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for proxy requests
    QUERY_TIMEOUT = 10  # Timeout in seconds for store queries
    MAX_ZIP_BYTES = 500 * 1024 * 1024
    USER_AGENT = "moddiscovery/0.1"

    ENV_CONFIG = "MODDISCOVERY_CONFIG"
    ENV_PROXY_URL = "MODDISCOVERY_PROXY_URL"
    ENV_DATABASE_URL = "MODDISCOVERY_DATABASE_URL"
    ENV_REQUEST_TIMEOUT = "MODDISCOVERY_REQUEST_TIMEOUT"
    ENV_LOG_LEVEL = "MODDISCOVERY_LOG_LEVEL"
    DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "moddiscovery", "config.yml")


# YAML keys -> Constants attribute, with the type each value is coerced to.
_CONFIG_KEYS = {
    ("proxy", "url"): ("PROXY_URL", str),
    ("proxy", "timeout"): ("REQUEST_TIMEOUT", float),
    ("proxy", "max_zip_bytes"): ("MAX_ZIP_BYTES", int),
    ("database", "url"): ("DATABASE_URL", str),
    ("database", "timeout"): ("QUERY_TIMEOUT", float),
}


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Read the YAML config file, returning an empty mapping when absent."""
    config_path = path or os.environ.get(Constants.ENV_CONFIG) or Constants.DEFAULT_CONFIG_PATH
    config_path = os.path.expanduser(config_path)
    if not os.path.isfile(config_path):
        return {}
    with open(config_path, "r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"config file {config_path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"config file {config_path} must contain a mapping")
    logger.debug("Loaded config from %s", config_path)
    return data


def load_config(path: Optional[str] = None) -> None:
    """Apply YAML config, then environment overrides, onto Constants."""
    data = _load_yaml_config(path)
    for (section, key), (attr, cast) in _CONFIG_KEYS.items():
        value = (data.get(section) or {}).get(key)
        if value is not None:
            setattr(Constants, attr, cast(value))

    if os.environ.get(Constants.ENV_PROXY_URL):
        Constants.PROXY_URL = os.environ[Constants.ENV_PROXY_URL]
    if os.environ.get(Constants.ENV_DATABASE_URL):
        Constants.DATABASE_URL = os.environ[Constants.ENV_DATABASE_URL]
    if os.environ.get(Constants.ENV_REQUEST_TIMEOUT):
        Constants.REQUEST_TIMEOUT = float(os.environ[Constants.ENV_REQUEST_TIMEOUT])
