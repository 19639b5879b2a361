"""
Configuration utilities for loading and managing config files.

This module provides centralized configuration loading with:
- YAML config file parsing
- Environment variable substitution (${VAR} syntax)
- Automatic .env file loading

Usage:
    from storage_diet.utils.config import load_config, get_section

    config = load_config()  # Loads config with env substitution
    s3 = get_section(config, 'storage', 's3')
"""
from pathlib import Path
import yaml
import os
import re
from typing import Dict, Optional, Any
import logging
from dotenv import load_dotenv

# Use standard logging to avoid circular import
logger = logging.getLogger(__name__)

# Track if .env has been loaded
_env_loaded = False

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _ensure_env_loaded():
    """Ensure .env file is loaded (once)."""
    global _env_loaded
    if not _env_loaded:
        from .paths import get_env_path
        env_path = get_env_path()
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
        _env_loaded = True


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables."""
    if isinstance(value, str):
        for var_name in _ENV_PATTERN.findall(value):
            env_value = os.getenv(var_name, '')
            value = value.replace(f'${{{var_name}}}', env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_config(config_path: Optional[Path] = None, substitute_env: bool = True) -> Dict:
    """Load configuration from yaml file with optional env variable substitution.

    Args:
        config_path: Optional path to config file. If not provided, will look in default location.
        substitute_env: If True, substitute ${VAR} patterns with environment variables.

    Returns:
        Dict containing configuration settings with env vars substituted.
    """
    # Ensure .env is loaded before reading config
    _ensure_env_loaded()

    if config_path is None:
        from .paths import get_config_path
        config_path = get_config_path()

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    if substitute_env:
        config = _substitute_env_vars(config)

    return config


def get_section(config: Dict, *keys: str) -> Dict:
    """Walk nested config sections, returning {} for anything missing."""
    section = config
    for key in keys:
        if not isinstance(section, dict):
            return {}
        section = section.get(key) or {}
    return section if isinstance(section, dict) else {}


def as_bool(value: Any, default: bool = False) -> bool:
    """Interpret a config value that may arrive as a string after env substitution."""
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
