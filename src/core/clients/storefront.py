from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

import requests

from src.core.config import settings
from src.core.errors import ConfigurationError, DownstreamForwardError, parse_retry_after

logger = logging.getLogger(__name__)


class ProductSink(Protocol):
    async def create(self, shop_domain: str, product: dict[str, object]) -> dict[str, object]: ...


class ProxyProductSink:
    """Creates storefront products through the internal app proxy."""

    def __init__(
        self,
        base_url: str | None = None,
        internal_secret: str | None = None,
        transport: Callable[..., requests.Response] = requests.post,
    ) -> None:
        self.base_url = (settings.destination_proxy_url if base_url is None else base_url).rstrip("/")
        self.internal_secret = settings.internal_api_secret if internal_secret is None else internal_secret
        self._transport = transport

    def ensure_configured(self) -> None:
        if not self.base_url or not self.internal_secret:
            raise ConfigurationError("Destination proxy URL or internal secret is not configured")

    async def create(self, shop_domain: str, product: dict[str, object]) -> dict[str, object]:
        self.ensure_configured()
        endpoint = f"{self.base_url}/api/proxy/create-product"
        logger.debug("Forwarding product creation for shop=%s to %s", shop_domain, endpoint)

        def _post() -> requests.Response:
            try:
                return self._transport(
                    endpoint,
                    json={"shopDomain": shop_domain, "product": product},
                    headers={
                        "Content-Type": "application/json",
                        "Authorization": f"Bearer {self.internal_secret}",
                    },
                    timeout=settings.http_timeout_seconds,
                )
            except requests.RequestException as exc:
                raise DownstreamForwardError(f"Destination proxy unreachable: {exc}") from exc

        response = await asyncio.to_thread(_post)
        if not response.ok:
            logger.error(
                "Failed to proxy product creation shop=%s status=%s body=%s",
                shop_domain,
                response.status_code,
                response.text[:500],
            )
            raise DownstreamForwardError(
                f"Failed to proxy product creation: {response.status_code}",
                status=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            return response.json()
        except ValueError:
            return {}
