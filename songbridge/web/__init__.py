"""
HTTP Layer.

This package exposes the providers and the stream relay over HTTP with
aiohttp.web: JSON search/resolve endpoints and the streaming download.
"""

from .app import create_app, run

__all__ = ["create_app", "run"]
