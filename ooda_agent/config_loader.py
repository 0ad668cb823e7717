"""
Configuration loader for the OODA agent.

Loads configuration from YAML files with support for
environment variable interpolation.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .models import (
    ModelConfig,
    LoopConfig,
    SearxngConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    AppConfig,
)

logger = logging.getLogger(__name__)

# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

_EVICTION_POLICIES = ("oldest", "pairwise")
_DUPLICATE_POLICIES = ("overwrite", "reject")

# Singleton cache for app config
_app_config: Optional[AppConfig] = None


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars resolved
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _parse_model_config(data: dict) -> ModelConfig:
    """Parse model configuration from dict."""
    return ModelConfig(
        base_url=data.get("base_url") or None,
        api_key=data.get("api_key") or None,
        model=data.get("model") or "gpt-3.5-turbo",
        temperature=float(data.get("temperature", 0.0)),
        min_tokens_for_completion=int(data.get("min_tokens_for_completion", 256)),
        timeout=float(data.get("timeout", 60.0)),
    )


def _parse_loop_config(data: dict) -> LoopConfig:
    """Parse loop configuration from dict."""
    eviction = str(data.get("eviction", "oldest")).lower()
    if eviction not in _EVICTION_POLICIES:
        raise ValueError(
            f"Unknown eviction policy: {eviction} (expected one of {_EVICTION_POLICIES})"
        )

    max_steps = int(data.get("max_steps", 10))
    if max_steps <= 0:
        raise ValueError("loop.max_steps must be positive")

    return LoopConfig(
        max_steps=max_steps,
        max_response_bytes=int(data.get("max_response_bytes", 2048)),
        eviction=eviction,
    )


def _parse_tools_config(data: dict) -> ToolsConfig:
    """Parse tools configuration from dict."""
    searxng_data = data.get("searxng", {})
    policy = str(data.get("duplicate_policy", "overwrite")).lower()
    if policy not in _DUPLICATE_POLICIES:
        raise ValueError(
            f"Unknown duplicate policy: {policy} (expected one of {_DUPLICATE_POLICIES})"
        )

    tools_config = ToolsConfig(
        searxng=SearxngConfig(
            url=searxng_data.get("url", "http://localhost:8080/search"),
            timeout=int(searxng_data.get("timeout", 30)),
        ),
        duplicate_policy=policy,
    )
    if "enabled" in data:
        tools_config.enabled = list(data["enabled"] or [])
    return tools_config


def _parse_server_config(data: dict) -> ServerConfig:
    """Parse server configuration from dict."""
    return ServerConfig(
        host=data.get("host", "0.0.0.0"),
        port=int(data.get("port", 8000)),
        workers=int(data.get("workers", 1)),
        reload=_as_bool(data.get("reload", False)),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    """Parse logging configuration from dict."""
    return LoggingConfig(level=data.get("level", "INFO"))


def parse_app_config(raw_config: dict) -> AppConfig:
    """
    Build an AppConfig from an already-loaded YAML mapping.

    Environment variables are substituted before parsing.
    """
    raw_config = _substitute_env_vars_recursive(raw_config)

    return AppConfig(
        version=str(raw_config.get("version", "1.0")),
        model=_parse_model_config(raw_config.get("model") or {}),
        loop=_parse_loop_config(raw_config.get("loop") or {}),
        tools=_parse_tools_config(raw_config.get("tools") or {}),
        server=_parse_server_config(raw_config.get("server") or {}),
        logging=_parse_logging_config(raw_config.get("logging") or {}),
    )


def load_app_config(path: Optional[str] = None, reload: bool = False) -> AppConfig:
    """
    Load unified application configuration from a YAML file.

    Uses a singleton pattern - subsequent calls return the cached config
    unless reload=True is specified.

    Args:
        path: Path to the YAML configuration file. If None, uses
              CONFIG_PATH env var or the default path (config/config.yaml).
        reload: If True, force reload from disk instead of using cache.

    Returns:
        AppConfig with all configuration loaded. Defaults are used when
        the file does not exist.

    Raises:
        ValueError: If the config is invalid
    """
    global _app_config

    if _app_config is not None and not reload:
        return _app_config

    if path is None:
        path = os.environ.get("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

    config_path = Path(path)

    if not config_path.exists():
        logger.warning(f"Config not found at {config_path}, using defaults")
        _app_config = parse_app_config({})
        return _app_config

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Configuration file {config_path} is empty")

    _app_config = parse_app_config(raw_config)

    logger.debug(
        f"Configuration loaded: model={_app_config.model.model}, "
        f"tools={_app_config.tools.enabled}"
    )

    return _app_config


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _app_config
    _app_config = None
    logger.debug("Configuration cache reset")
