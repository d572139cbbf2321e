"""Utility modules for the message quota service."""

from .env_utils import parse_bool_env, parse_int_env, parse_str_env, parse_list_env
from .timer_utils import elapsed_ms, Timer

__all__ = [
    # Environment parsing
    "parse_bool_env",
    "parse_int_env",
    "parse_str_env",
    "parse_list_env",
    # Timer utilities
    "elapsed_ms",
    "Timer",
]
