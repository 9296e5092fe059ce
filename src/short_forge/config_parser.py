"""
ConfigParser - Unified Environment Variable Parsing for Short Forge

Centralized parsing utilities for environment variables, used as
dataclass default factories in config.py.

Usage:
    from short_forge.config_parser import ConfigParser

    max_height: int = field(default_factory=ConfigParser.make_int_parser("MAX_VIDEO_HEIGHT", 720))
    mirrors: List[str] = field(default_factory=ConfigParser.make_list_parser("MIRROR_ENDPOINTS", []))
"""

import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union


class ConfigParser:
    """Unified environment variable parsing utilities."""

    # =========================================================================
    # Direct Parsing Functions
    # =========================================================================

    @staticmethod
    def parse_int(key: str, default: int) -> int:
        """Parse an integer from environment variable, falling back on bad input."""
        try:
            return int(os.environ.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    @staticmethod
    def parse_float(key: str, default: float) -> float:
        """Parse a float from environment variable, falling back on bad input."""
        try:
            return float(os.environ.get(key, str(default)))
        except (ValueError, TypeError):
            return default

    @staticmethod
    def parse_bool(key: str, default: bool) -> bool:
        """Parse a boolean from environment variable.

        Treats 'true', '1', 'yes', 'on' as True and 'false', '0', 'no', 'off'
        as False. Anything else yields the default.
        """
        value = os.environ.get(key, "").lower()
        if value in ("true", "1", "yes", "on"):
            return True
        elif value in ("false", "0", "no", "off"):
            return False
        else:
            return default

    @staticmethod
    def parse_str(key: str, default: str) -> str:
        return os.environ.get(key, default)

    @staticmethod
    def parse_optional_path(key: str) -> Optional[Path]:
        """Parse a path that is unset unless the variable is non-empty."""
        env_value = os.environ.get(key, "").strip()
        return Path(env_value) if env_value else None

    @staticmethod
    def parse_path(key: str, default: Union[str, Path]) -> Path:
        env_value = os.environ.get(key)
        if env_value:
            return Path(env_value)
        return Path(default)

    @staticmethod
    def parse_list(key: str, default: Sequence[str]) -> List[str]:
        """Parse a comma-separated list, keeping order and dropping blanks."""
        raw = os.environ.get(key)
        if raw is None:
            return list(default)
        return [item.strip() for item in raw.split(",") if item.strip()]

    # =========================================================================
    # Factory Functions (for dataclass field default_factory)
    # =========================================================================

    @staticmethod
    def make_int_parser(key: str, default: int) -> Callable[[], int]:
        return lambda: ConfigParser.parse_int(key, default)

    @staticmethod
    def make_float_parser(key: str, default: float) -> Callable[[], float]:
        return lambda: ConfigParser.parse_float(key, default)

    @staticmethod
    def make_bool_parser(key: str, default: bool) -> Callable[[], bool]:
        return lambda: ConfigParser.parse_bool(key, default)

    @staticmethod
    def make_str_parser(key: str, default: str) -> Callable[[], str]:
        return lambda: ConfigParser.parse_str(key, default)

    @staticmethod
    def make_path_parser(key: str, default: Union[str, Path]) -> Callable[[], Path]:
        return lambda: ConfigParser.parse_path(key, default)

    @staticmethod
    def make_optional_path_parser(key: str) -> Callable[[], Optional[Path]]:
        return lambda: ConfigParser.parse_optional_path(key)

    @staticmethod
    def make_list_parser(key: str, default: Sequence[str]) -> Callable[[], List[str]]:
        return lambda: ConfigParser.parse_list(key, default)


__all__ = [
    "ConfigParser",
]
