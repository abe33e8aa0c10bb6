from __future__ import annotations

import pytest
import requests

from src.core.backoff import AdaptiveBackoff
from src.core.clients.storefront import ProxyProductSink
from src.core.errors import ConfigurationError, DownstreamForwardError, parse_retry_after


class _Resp:
    def __init__(self, status_code: int, body: dict | None = None, headers: dict | None = None) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        self.text = str(body)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> dict:
        if self._body is None:
            raise ValueError("no json")
        return self._body


@pytest.mark.asyncio
async def test_sink_posts_product_with_bearer_secret() -> None:
    calls: list[tuple[str, dict]] = []

    def _post(url: str, **kwargs):  # noqa: ANN003
        calls.append((url, kwargs))
        return _Resp(200, {"product": {"id": 1}})

    sink = ProxyProductSink(base_url="https://remix.test/", internal_secret="s3cret", transport=_post)
    result = await sink.create("demo.myshopify.com", {"title": "x"})

    assert result == {"product": {"id": 1}}
    url, kwargs = calls[0]
    assert url == "https://remix.test/api/proxy/create-product"
    assert kwargs["headers"]["Authorization"] == "Bearer s3cret"
    assert kwargs["json"] == {"shopDomain": "demo.myshopify.com", "product": {"title": "x"}}


@pytest.mark.asyncio
async def test_sink_tolerates_empty_success_body() -> None:
    sink = ProxyProductSink(base_url="https://remix.test", internal_secret="s", transport=lambda url, **kw: _Resp(201))
    assert await sink.create("demo.myshopify.com", {}) == {}


@pytest.mark.asyncio
async def test_sink_rejection_raises_forward_error() -> None:
    sink = ProxyProductSink(
        base_url="https://remix.test",
        internal_secret="s",
        transport=lambda url, **kw: _Resp(429, {"error": "slow down"}, {"Retry-After": "2"}),
    )

    with pytest.raises(DownstreamForwardError) as exc:
        await sink.create("demo.myshopify.com", {})

    assert exc.value.status == 429
    assert exc.value.retry_after == 2.0
    assert exc.value.throttled is True


@pytest.mark.asyncio
async def test_sink_network_error_raises_forward_error() -> None:
    def _post(url: str, **kwargs):  # noqa: ANN003
        raise requests.Timeout("slow")

    sink = ProxyProductSink(base_url="https://remix.test", internal_secret="s", transport=_post)
    with pytest.raises(DownstreamForwardError):
        await sink.create("demo.myshopify.com", {})


@pytest.mark.asyncio
async def test_sink_without_configuration_is_configuration_error() -> None:
    sink = ProxyProductSink(base_url="", internal_secret="")
    with pytest.raises(ConfigurationError):
        await sink.create("demo.myshopify.com", {})


def test_parse_retry_after_values() -> None:
    assert parse_retry_after(None) is None
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert parse_retry_after("-5") == 0.0


@pytest.mark.asyncio
async def test_adaptive_backoff_widens_and_decays() -> None:
    slept: list[float] = []

    async def _sleep(seconds: float) -> None:
        slept.append(seconds)

    backoff = AdaptiveBackoff(base_delay=0.5, max_delay=8, sleep=_sleep)
    await backoff.pause()
    backoff.on_throttle()
    await backoff.pause()
    backoff.on_throttle(retry_after=5)
    await backoff.pause()
    backoff.on_throttle(retry_after=30)
    await backoff.pause()
    backoff.on_success()
    await backoff.pause()
    for _ in range(10):
        backoff.on_success()
    await backoff.pause()

    assert slept == [0.5, 1.0, 5.0, 8.0, 4.0, 0.5]
