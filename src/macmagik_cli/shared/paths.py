"""Path management for macmagik.

Manages the ~/.macmagik/ directory.
"""

from pathlib import Path

# Base directory for all macmagik data
MACMAGIK_DIR = Path.home() / ".macmagik"

# Persistent CLI configuration
CONFIG_FILE = MACMAGIK_DIR / "config.yaml"
