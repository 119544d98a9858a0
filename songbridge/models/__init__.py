"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application: search results, resolved playback info and
the service configuration.
"""

from .config import RelayConfig
from .music import MusicItem, PlayInfo

__all__ = ["MusicItem", "PlayInfo", "RelayConfig"]
