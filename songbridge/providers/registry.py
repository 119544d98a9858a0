"""
The process-wide provider table.
"""

import logging
from collections.abc import Iterable
from types import MappingProxyType

from songbridge.models.config import DEFAULT_PROVIDER, RelayConfig

from .base import MusicProvider
from .gequbao import GequbaoProvider
from .gequhai import GequhaiProvider
from .jianbin import JianbinProvider
from .livepoo import LivepooProvider

log = logging.getLogger(__name__)

# jbsou.cn platform key per registered provider name.
JIANBIN_SOURCES = {
    "jianbin-netease": "netease",
    "jianbin-qq": "qq",
    "jianbin-kugou": "kugou",
    "jianbin-kuwo": "kuwo",
}


def build_default_providers(timeout: float | None = None) -> list[MusicProvider]:
    """Instantiates every known adapter, in registration order."""
    kwargs = {"timeout": timeout} if timeout else {}
    providers: list[MusicProvider] = [
        GequbaoProvider(**kwargs),
        GequhaiProvider(**kwargs),
        LivepooProvider(**kwargs),
    ]
    providers.extend(
        JianbinProvider(name, source, **kwargs)
        for name, source in JIANBIN_SOURCES.items()
    )
    return providers


class ProviderRegistry:
    """
    Maps provider names to adapter instances.

    The table is frozen at construction, so concurrent requests can read it
    without locking. Lookups never fail: unknown or missing names fall back to
    the default provider.
    """

    def __init__(
        self, providers: Iterable[MusicProvider], default: str = DEFAULT_PROVIDER
    ):
        table: dict[str, MusicProvider] = {}
        for provider in providers:
            key = provider.name.strip().lower()
            if key in table:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            table[key] = provider

        default = default.strip().lower()
        if default not in table:
            raise ValueError(f"Default provider '{default}' is not registered.")

        self._providers = MappingProxyType(table)
        self._default = default

    @property
    def default_name(self) -> str:
        return self._default

    @property
    def default(self) -> MusicProvider:
        return self._providers[self._default]

    def get(self, name: str | None = None) -> MusicProvider:
        """Returns the named provider, or the default one."""
        key = (name or "").strip().lower()
        provider = self._providers.get(key)
        if provider is None:
            if key:
                log.debug(f"Unknown provider '{name}', using '{self._default}'")
            return self.default
        return provider

    def list_all(self) -> list[MusicProvider]:
        return list(self._providers.values())

    def names(self) -> list[str]:
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._providers

    def __len__(self) -> int:
        return len(self._providers)


_default_registry: ProviderRegistry | None = None


def get_registry(config: RelayConfig | None = None) -> ProviderRegistry:
    """
    Returns the process-wide registry, creating it on first use.

    ``config`` only matters for the first call; the table is never rebuilt.
    """
    global _default_registry
    if _default_registry is None:
        config = config or RelayConfig()
        providers = build_default_providers(config.request_timeout)
        default = config.default_provider
        if default not in {p.name for p in providers}:
            log.warning(
                f"[yellow]Unknown default provider '{default}', "
                f"using '{DEFAULT_PROVIDER}'.[/yellow]"
            )
            default = DEFAULT_PROVIDER
        _default_registry = ProviderRegistry(providers, default=default)
    return _default_registry


def get_provider(name: str | None = None) -> MusicProvider:
    return get_registry().get(name)


def get_all_providers() -> list[MusicProvider]:
    return get_registry().list_all()
