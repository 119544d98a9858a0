"""
Media Layer.

This package is responsible for moving audio bytes: opening upstream media
URLs as streams (with retry) and writing them to disk.
"""

from .downloader import save_stream
from .relay import RelayOptions, RelayStream, StreamRelay

__all__ = ["RelayOptions", "RelayStream", "StreamRelay", "save_stream"]
