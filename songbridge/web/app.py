"""
Builds the aiohttp application that serves search, resolve and download.
"""

import logging

from aiohttp import web

from songbridge.media.relay import RelayOptions, StreamRelay
from songbridge.models.config import RelayConfig
from songbridge.providers.registry import ProviderRegistry, get_registry
from songbridge.utils.session import close_connection_pool

from .routes import CONFIG_KEY, REGISTRY_KEY, RELAY_KEY, error_middleware, routes

log = logging.getLogger(__name__)


def build_relay(config: RelayConfig) -> StreamRelay:
    """The download relay with the configured timeout and retry budget."""
    return StreamRelay(
        RelayOptions(
            timeout=config.download_timeout,
            max_redirects=config.max_redirects,
            retry_limit=config.retry_limit,
            retry_delay_base_ms=config.retry_delay_ms,
        ),
        max_workers=config.max_workers,
    )


async def _close_pool(app: web.Application) -> None:
    await close_connection_pool()


def create_app(
    config: RelayConfig | None = None,
    registry: ProviderRegistry | None = None,
    relay: StreamRelay | None = None,
) -> web.Application:
    """
    Creates the web application. The registry and relay are built from the
    configuration unless given explicitly.
    """
    config = config or RelayConfig()
    app = web.Application(middlewares=[error_middleware])
    app[CONFIG_KEY] = config
    app[REGISTRY_KEY] = registry if registry is not None else get_registry(config)
    app[RELAY_KEY] = relay if relay is not None else build_relay(config)
    app.add_routes(routes)
    app.on_cleanup.append(_close_pool)
    log.debug(
        f"Application ready with providers: {', '.join(app[REGISTRY_KEY].names())}"
    )
    return app


def run(config: RelayConfig) -> None:
    """Serves the application until interrupted."""
    web.run_app(
        create_app(config),
        host=config.host,
        port=config.port,
        print=None,
        access_log=logging.getLogger("songbridge.access"),
    )
