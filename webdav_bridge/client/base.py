"""Base client for WebDAV operations with shared request instrumentation."""

import logging
import time
from abc import ABC

from httpx import AsyncClient, HTTPStatusError, RequestError

from webdav_bridge.observability.metrics import (
    record_upstream_error,
    record_upstream_request,
)
from webdav_bridge.observability.tracing import trace_upstream_call

logger = logging.getLogger(__name__)


class BaseWebDAVClient(ABC):
    """Base class for clients that talk to a WebDAV server."""

    # Identifies the caller in upstream metrics/tracing
    source: str = "client"

    def __init__(self, http_client: AsyncClient, root_path: str = ""):
        """Initialize with a shared HTTP client.

        Args:
            http_client: Authenticated AsyncClient bound to the server base URL
            root_path: URL path of that base URL (e.g. ``/dav`` or
                ``/api/webdav``); hrefs below it are reported relative to it
        """
        self._client = http_client
        self.root_path = "/" + root_path.strip("/") if root_path.strip("/") else ""

    async def _make_request(self, method: str, url: str, **kwargs):
        """Common request wrapper with logging, tracing, and error handling.

        Args:
            method: HTTP method
            url: Request URL, relative to the client's base URL
            **kwargs: Additional request parameters

        Returns:
            Response object

        Raises:
            HTTPStatusError: For any 4xx/5xx response
            RequestError: When no response was received
        """
        logger.debug(f"Making {method} request to {url}")

        start_time = time.time()

        try:
            with trace_upstream_call(source=self.source, method=method, path=url):
                response = await self._client.request(method, url, **kwargs)
                record_upstream_request(
                    source=self.source,
                    method=method,
                    status_code=response.status_code,
                    duration=time.time() - start_time,
                )
                response.raise_for_status()
                return response

        except HTTPStatusError as e:
            if e.response.status_code == 404:
                # Existence checks expect 404s
                logger.debug(f"HTTPStatusError 404: {method} {url}")
            else:
                logger.warning(
                    f"HTTPStatusError {e.response.status_code}: {method} {url}"
                )
            raise
        except RequestError as e:
            record_upstream_error(source=self.source, error_type=type(e).__name__)
            logger.warning(f"RequestError {method} {url}: {e}")
            raise
