"""Environment variable utilities.

Typed parsing of the service's environment settings. Invalid values fall
back to the default rather than failing at import time; range checks live
in QuotaConfig.
"""

import json
import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)


def parse_bool_env(key: str, default: bool = True) -> bool:
    """Parse a boolean value from an environment variable.

    Args:
        key: The environment variable name.
        default: Default value if the environment variable is not set.

    Returns:
        True if the value is 'true' (case-insensitive), False otherwise.
        Returns the default if the environment variable is not set.

    Examples:
        >>> os.environ["DATABASE_ENABLED"] = "false"
        >>> parse_bool_env("DATABASE_ENABLED")
        False
        >>> parse_bool_env("UNSET_VAR", default=False)
        False
    """
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() == "true"


def parse_int_env(key: str, default: int) -> int:
    """Parse an integer value from an environment variable.

    Returns the default if the variable is unset or not an integer.
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {key}={value!r}, using {default}")
        return default


def parse_str_env(key: str, default: Optional[str] = None) -> Optional[str]:
    """Parse a string value from an environment variable, stripping whitespace."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip()


def parse_list_env(key: str, default: List[str]) -> List[str]:
    """Parse a list from a JSON array or a comma-separated string.

    Examples:
        >>> os.environ["CORS_ORIGINS"] = '["https://app.example.com"]'
        >>> parse_list_env("CORS_ORIGINS", ["*"])
        ['https://app.example.com']
        >>> os.environ["CORS_ORIGINS"] = "https://a.example.com, https://b.example.com"
        >>> parse_list_env("CORS_ORIGINS", ["*"])
        ['https://a.example.com', 'https://b.example.com']
    """
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(parsed, list):
        return [str(item) for item in parsed]
    return [str(parsed)]
