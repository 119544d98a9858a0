"""
Storage Layer.

This package handles the configuration file. Nothing else is persisted: search
results and resolved URLs are always fetched fresh.
"""

from .config_manager import ConfigManager

__all__ = ["ConfigManager"]
