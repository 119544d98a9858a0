"""
Provider Layer.

Each module in this package scrapes one unofficial upstream music site and
normalizes its results into MusicItem / PlayInfo. The registry maps provider
names to singleton adapter instances.
"""

from .base import MusicProvider
from .gequbao import GequbaoProvider
from .gequhai import GequhaiProvider
from .jianbin import JianbinProvider
from .livepoo import LivepooProvider
from .registry import (
    ProviderRegistry,
    build_default_providers,
    get_all_providers,
    get_provider,
    get_registry,
)

__all__ = [
    "GequbaoProvider",
    "GequhaiProvider",
    "JianbinProvider",
    "LivepooProvider",
    "MusicProvider",
    "ProviderRegistry",
    "build_default_providers",
    "get_all_providers",
    "get_provider",
    "get_registry",
]
