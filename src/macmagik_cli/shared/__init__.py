"""Shared modules for macmagik."""

from .logging import configure_logging, verbosity_to_level
from .paths import CONFIG_FILE, MACMAGIK_DIR

__all__ = [
    # Paths
    "MACMAGIK_DIR",
    "CONFIG_FILE",
    # Logging
    "configure_logging",
    "verbosity_to_level",
]
