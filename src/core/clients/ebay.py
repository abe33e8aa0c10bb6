from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import requests

from src.core.config import settings
from src.core.errors import (
    CredentialError,
    UpstreamAuthError,
    UpstreamUnavailableError,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class AccessToken:
    value: str
    expires_at: datetime


@dataclass(slots=True)
class ListingPage:
    total: int
    items: list[dict]
    raw: dict


class EbayTokenCache:
    """Application token for the eBay Browse API (client-credentials grant).

    One instance is shared by every caller in a process. Refreshes are
    single-flight: concurrent callers that find the token stale queue on the
    lock and re-check before exchanging, so only the first one hits eBay.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_url: str | None = None,
        scope: str | None = None,
        safety_margin_seconds: int | None = None,
        clock: Clock = _utcnow,
        transport: Callable[..., requests.Response] = requests.post,
    ) -> None:
        self.client_id = settings.ebay_client_id if client_id is None else client_id
        self.client_secret = settings.ebay_client_secret if client_secret is None else client_secret
        self.token_url = token_url or settings.ebay_token_url
        self.scope = scope or settings.ebay_oauth_scope
        self.safety_margin = timedelta(
            seconds=(
                settings.ebay_token_safety_margin_seconds
                if safety_margin_seconds is None
                else safety_margin_seconds
            )
        )
        self.refresh_count = 0
        self._clock = clock
        self._transport = transport
        self._token: AccessToken | None = None
        self._lock = asyncio.Lock()

    def _is_fresh(self, token: AccessToken | None) -> bool:
        return token is not None and token.expires_at - self.safety_margin > self._clock()

    async def get_token(self) -> str:
        token = self._token
        if self._is_fresh(token):
            return token.value

        async with self._lock:
            token = self._token
            if self._is_fresh(token):
                return token.value
            token = await asyncio.to_thread(self._exchange)
            self._token = token
            return token.value

    def invalidate(self, value: str | None = None) -> None:
        if self._token is not None and (value is None or self._token.value == value):
            self._token = None

    def _exchange(self) -> AccessToken:
        if not self.client_id or not self.client_secret:
            raise CredentialError("eBay API credentials are not configured (EBAY_CLIENT_ID/EBAY_CLIENT_SECRET)")

        encoded = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        try:
            response = self._transport(
                self.token_url,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Authorization": f"Basic {encoded}",
                },
                data={"grant_type": "client_credentials", "scope": self.scope},
                timeout=settings.http_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(f"eBay token endpoint unreachable: {exc}") from exc

        if not response.ok:
            logger.error(
                "eBay token exchange failed status=%s body=%s",
                response.status_code,
                response.text[:500],
            )
            raise UpstreamAuthError("Failed to get eBay token", status=response.status_code)

        try:
            body = response.json()
            access_token = body.get("access_token")
            expires_in = int(body.get("expires_in") or 7200)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("eBay token response was unreadable body=%s", response.text[:500])
            raise UpstreamAuthError("eBay token response is not valid JSON", status=response.status_code) from exc
        if not access_token:
            raise UpstreamAuthError("eBay token response is missing access_token", status=response.status_code)

        self.refresh_count += 1
        logger.info("Obtained eBay application token expires_in=%s", expires_in)
        return AccessToken(value=access_token, expires_at=self._clock() + timedelta(seconds=expires_in))


class EbayBrowseClient:
    def __init__(
        self,
        token_cache: EbayTokenCache,
        search_url: str | None = None,
        search_query: str | None = None,
        transport: Callable[..., requests.Response] = requests.get,
    ) -> None:
        self.token_cache = token_cache
        self.search_url = search_url or settings.ebay_browse_search_url
        self.search_query = search_query or settings.ebay_search_query
        self._transport = transport

    async def search_seller_listings(
        self,
        seller_username: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> ListingPage:
        params = {
            "q": self.search_query,
            "filter": f"sellers:{{{seller_username}}}",
            "limit": limit,
            "offset": offset,
        }

        token = await self.token_cache.get_token()
        response = await asyncio.to_thread(self._get, token, params)
        if response.status_code == 401:
            logger.info("eBay rejected the application token, refreshing once")
            self.token_cache.invalidate(token)
            token = await self.token_cache.get_token()
            response = await asyncio.to_thread(self._get, token, params)
            if response.status_code == 401:
                raise UpstreamAuthError("eBay rejected a freshly issued token", status=401)

        if not response.ok:
            logger.warning(
                "eBay search failed status=%s seller=%s offset=%s body=%s",
                response.status_code,
                seller_username,
                offset,
                response.text[:500],
            )
            raise UpstreamUnavailableError(
                f"eBay API failed with status: {response.status_code}",
                status=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            body = response.json()
            return ListingPage(
                total=int(body.get("total") or 0),
                items=list(body.get("itemSummaries") or []),
                raw=body,
            )
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning(
                "eBay search returned an unreadable body seller=%s offset=%s body=%s",
                seller_username,
                offset,
                response.text[:500],
            )
            # No status, so it is retried like a transport failure.
            raise UpstreamUnavailableError(f"eBay API returned an unreadable body: {exc}") from exc

    def _get(self, token: str, params: dict[str, object]) -> requests.Response:
        try:
            return self._transport(
                self.search_url,
                params=params,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=settings.http_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(f"eBay API unreachable: {exc}") from exc
