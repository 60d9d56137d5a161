"""Configuration module: exports Settings and load_config."""

from mediaingest.config.loader import load_config
from mediaingest.config.settings import Settings

__all__ = ["Settings", "load_config"]
