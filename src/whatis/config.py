"""Runtime configuration: cache root, index location, network settings.

Precedence, lowest first: built-in defaults from ``Constants``, the YAML
config file, then ``WHATIS_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .constants import Constants
from .errors import ConfigError

logger = logging.getLogger(__name__)


def default_cache_root(env: Mapping[str, str]) -> Path:
    """Return ``$XDG_CACHE_HOME/whatis`` (``~/.cache/whatis`` by default)."""
    base = env.get("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache")
    return Path(base) / Constants.CACHE_DIR_NAME


def default_config_path(env: Mapping[str, str]) -> Path:
    """Return the config file path honoring ``WHATIS_CONFIG`` and XDG."""
    explicit = env.get(Constants.ENV_CONFIG)
    if explicit:
        return Path(explicit)
    base = env.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / Constants.CACHE_DIR_NAME / Constants.CONFIG_FILE_NAME


@dataclass(frozen=True)
class Config:
    """Settings passed through to the registry client and the fetcher."""

    cache_root: Path
    index_url: str = Constants.REGISTRY_URL_SPARSE
    timeout: float = Constants.REQUEST_TIMEOUT
    proxy: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)
    user_agent: str = Constants.USER_AGENT
    jobs: int = Constants.DOWNLOAD_JOBS

    @property
    def proxies(self) -> Dict[str, str]:
        """Proxy mapping in the shape ``requests`` expects."""
        if not self.proxy:
            return {}
        return {"http": self.proxy, "https": self.proxy}

    def with_overrides(self, **changes: Any) -> "Config":
        """Return a copy with the given non-None fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """Build a config from defaults, YAML file and environment.

        Args:
            path: Explicit config file; a missing explicit file is an error.
            env: Environment mapping (defaults to ``os.environ``).

        Returns:
            Config: Resolved configuration.
        """
        env = os.environ if env is None else env
        config = cls(cache_root=default_cache_root(env))

        if path:
            config_path = Path(path)
            if not config_path.is_file():
                raise ConfigError(f"config file not found: {config_path}")
        else:
            config_path = default_config_path(env)

        if config_path.is_file():
            config = config.with_overrides(**_read_yaml(config_path))
            logger.debug("Loaded config from %s", config_path)

        return config.with_overrides(**_read_env(env))


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Parse the YAML config file into ``Config`` field overrides."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping, got {type(data).__name__}")

    registry = data.get("registry") or {}
    http = data.get("http") or {}
    cache = data.get("cache") or {}
    if not all(isinstance(section, dict) for section in (registry, http, cache)):
        raise ConfigError(f"config {path}: 'registry', 'http' and 'cache' must be mappings")

    overrides: Dict[str, Any] = {
        "index_url": registry.get("index"),
        "token": registry.get("token"),
        "proxy": http.get("proxy"),
        "user_agent": http.get("user-agent"),
        "timeout": _coerce(http.get("timeout"), float, "http.timeout"),
        "jobs": _coerce(http.get("jobs"), int, "http.jobs"),
    }
    if cache.get("dir"):
        overrides["cache_root"] = Path(os.path.expanduser(str(cache["dir"])))
    return overrides


def _read_env(env: Mapping[str, str]) -> Dict[str, Any]:
    """Collect ``WHATIS_*`` overrides from the environment."""
    overrides: Dict[str, Any] = {
        "index_url": env.get(Constants.ENV_INDEX_URL) or None,
        "token": env.get(Constants.ENV_TOKEN) or None,
        "proxy": env.get(Constants.ENV_HTTP_PROXY) or None,
        "timeout": _coerce(env.get(Constants.ENV_HTTP_TIMEOUT), float, Constants.ENV_HTTP_TIMEOUT),
        "jobs": _coerce(env.get(Constants.ENV_JOBS), int, Constants.ENV_JOBS),
    }
    if env.get(Constants.ENV_CACHE_DIR):
        overrides["cache_root"] = Path(os.path.expanduser(env[Constants.ENV_CACHE_DIR]))
    return overrides


def _coerce(value: Any, kind: type, label: str) -> Any:
    if value is None or value == "":
        return None
    try:
        result = kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a {kind.__name__}, got {value!r}") from exc
    if result <= 0:
        raise ConfigError(f"{label} must be positive, got {value!r}")
    return result
