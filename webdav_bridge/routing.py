"""Routing strategy selection.

This is the only module that looks at runtime environment signals. The
hosting collaborator resolves a ``ProxyRoute`` once and hands it to the
facade; the facade never re-inspects the environment on its own.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from webdav_bridge.config import Settings
from webdav_bridge.models import ProxyRoute, RoutingStrategy, WebDAVConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuntimeSignals:
    """Environment facts the routing decision depends on."""

    hostname: Optional[str] = None
    dev_mode: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "RuntimeSignals":
        return cls(
            hostname=urlparse(settings.gateway_origin).hostname,
            dev_mode=settings.dev_mode,
        )


def _targets_upstream(server_url: str, settings: Settings) -> bool:
    host = urlparse(server_url).hostname or ""
    return bool(host) and host == settings.upstream_host


def resolve_proxy_route(
    config: WebDAVConfig,
    settings: Settings,
    signals: Optional[RuntimeSignals] = None,
) -> ProxyRoute:
    """Pick direct, dev-proxy or serverless-proxy routing for ``config``.

    Only servers on the configured upstream host are proxied; anything else
    is reached directly.

    Args:
        config: Connection settings (``server_url`` and ``use_proxy`` matter)
        settings: Application settings with prefixes and origins
        signals: Runtime facts; derived from ``settings`` when omitted

    Returns:
        The resolved route
    """
    signals = signals or RuntimeSignals.from_settings(settings)
    pattern = settings.serverless_host_pattern

    if _targets_upstream(config.server_url, settings):
        if pattern and signals.hostname and pattern in signals.hostname:
            route = ProxyRoute(
                strategy=RoutingStrategy.SERVERLESS_PROXY,
                base_url=settings.gateway_origin.rstrip("/") + settings.gateway_prefix,
                path_prefix=settings.gateway_prefix,
            )
            logger.info(f"Routing via serverless gateway: {route.base_url}")
            return route

        if signals.dev_mode or config.use_proxy:
            route = ProxyRoute(
                strategy=RoutingStrategy.DEV_PROXY,
                base_url=settings.dev_proxy_origin.rstrip("/")
                + settings.dev_proxy_prefix,
                path_prefix=settings.dev_proxy_prefix,
            )
            logger.info(f"Routing via dev proxy: {route.base_url}")
            return route

    route = ProxyRoute(
        strategy=RoutingStrategy.DIRECT,
        base_url=config.server_url.rstrip("/"),
        path_prefix=urlparse(config.server_url).path.rstrip("/"),
    )
    logger.info(f"Routing directly to {route.base_url}")
    return route
