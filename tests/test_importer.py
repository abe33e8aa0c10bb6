from __future__ import annotations

import json
import logging

import pytest
import requests

from src.core.backoff import AdaptiveBackoff
from src.core.clients.ebay import EbayBrowseClient, EbayTokenCache, ListingPage
from src.core.errors import (
    CredentialError,
    DownstreamForwardError,
    UpstreamAuthError,
    UpstreamUnavailableError,
)
from src.core.importer import ImportJobRunner, LeaseLostError
from src.core.jobs import ImportJobMessage, JobProgress
from src.models.import_job import ImportJobStatus

SHOP = "demo.myshopify.com"


def _message(total: int) -> ImportJobMessage:
    return ImportJobMessage(
        job_id="1d0f6c3e-7b0e-4a8e-9a53-3f1f7f0f2a10",
        shop_domain=SHOP,
        seller_username="vintage_seller",
        total=total,
    )


def _listings(offset: int, count: int) -> list[dict]:
    return [
        {"itemId": f"item-{offset + i}", "title": f"Item {offset + i}", "price": {"value": "1.00"}}
        for i in range(count)
    ]


class _FakeBrowse:
    def __init__(self, total: int, failures: dict[int, list[Exception]] | None = None) -> None:
        self.total = total
        self.failures = {offset: list(errors) for offset, errors in (failures or {}).items()}
        self.calls: list[tuple[str, int, int]] = []

    async def search_seller_listings(self, seller_username: str, *, limit: int, offset: int = 0) -> ListingPage:
        self.calls.append((seller_username, limit, offset))
        pending = self.failures.get(offset)
        if pending:
            raise pending.pop(0)
        count = max(0, min(limit, self.total - offset))
        return ListingPage(total=self.total, items=_listings(offset, count), raw={})


class _FakeSink:
    def __init__(self, reject_skus: set[str] | None = None, error: Exception | None = None) -> None:
        self.created: list[dict] = []
        self.reject_skus = reject_skus or set()
        self.error = error

    async def create(self, shop_domain: str, product: dict) -> dict:
        if self.error is not None:
            raise self.error
        sku = product["variants"][0]["sku"]
        if sku in self.reject_skus:
            raise DownstreamForwardError("Failed to proxy product creation: 422", status=422)
        self.created.append(product)
        return {"ok": True}


class _FakeStore:
    def __init__(self) -> None:
        self.running: list[str] = []
        self.progress_saves: list[int] = []
        self.finished: list[tuple[ImportJobStatus, JobProgress, str | None]] = []

    async def mark_running(self, shop_domain: str, job_id: str) -> None:
        self.running.append(job_id)

    async def save_progress(self, shop_domain: str, job_id: str, progress: JobProgress) -> None:
        self.progress_saves.append(progress.pages_processed)

    async def finish(self, shop_domain, job_id, status, progress, error_message=None) -> None:  # noqa: ANN001
        self.finished.append((status, progress, error_message))


class _Sleeps:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _runner(browse, sink, store, sleeps: _Sleeps | None = None, **kwargs) -> ImportJobRunner:  # noqa: ANN001, ANN003
    sleeps = sleeps or _Sleeps()
    kwargs.setdefault("page_max_attempts", 3)
    return ImportJobRunner(
        browse,
        sink,
        store,
        page_size=50,
        backoff_factory=lambda: AdaptiveBackoff(base_delay=0.5, max_delay=60, sleep=sleeps),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetches_exactly_ceil_pages_and_imports_everything() -> None:
    browse, sink, store, sleeps = _FakeBrowse(120), _FakeSink(), _FakeStore(), _Sleeps()
    metrics: dict[str, int] = {}

    outcome = await _runner(browse, sink, store, sleeps, metrics=metrics).run(_message(120))

    assert [offset for _, _, offset in browse.calls] == [0, 50, 100]
    assert all(limit == 50 for _, limit, _ in browse.calls)
    assert outcome.status is ImportJobStatus.COMPLETED
    assert len(sink.created) == 120
    assert store.progress_saves == [1, 2, 3]
    assert store.finished[0][0] is ImportJobStatus.COMPLETED
    assert sleeps.calls == [0.5, 0.5]
    assert metrics["items_imported"] == 120


@pytest.mark.asyncio
async def test_exact_multiple_of_page_size() -> None:
    browse = _FakeBrowse(100)
    await _runner(browse, _FakeSink(), _FakeStore()).run(_message(100))
    assert len(browse.calls) == 2


@pytest.mark.asyncio
async def test_failed_second_page_yields_partially_failed(caplog: pytest.LogCaptureFixture) -> None:
    browse = _FakeBrowse(120, failures={50: [UpstreamUnavailableError("eBay API failed with status: 503", status=503)]})
    sink, store = _FakeSink(), _FakeStore()
    metrics: dict[str, int] = {}

    with caplog.at_level(logging.WARNING, logger="src.core.importer"):
        outcome = await _runner(browse, sink, store, metrics=metrics, page_max_attempts=1).run(_message(120))

    assert outcome.status is ImportJobStatus.PARTIALLY_FAILED
    assert len(browse.calls) == 3
    assert len(sink.created) == 70
    created_skus = {product["variants"][0]["sku"] for product in sink.created}
    assert not any(f"item-{n}" in created_skus for n in range(50, 100))
    assert outcome.progress.pages_failed == 1
    failure = outcome.progress.failures[0]
    assert (failure.scope, failure.kind, failure.page, failure.offset) == ("page", "upstream_unavailable", 2, 50)
    assert metrics["pages_failed"] == 1
    assert any("page=2" in record.getMessage() for record in caplog.records if record.levelno == logging.WARNING)


@pytest.mark.asyncio
async def test_transient_page_error_is_retried_with_backoff() -> None:
    throttled = UpstreamUnavailableError("eBay API failed with status: 429", status=429, retry_after=3)
    browse = _FakeBrowse(60, failures={50: [throttled]})
    sleeps = _Sleeps()

    outcome = await _runner(browse, _FakeSink(), _FakeStore(), sleeps).run(_message(60))

    assert outcome.status is ImportJobStatus.COMPLETED
    assert [offset for _, _, offset in browse.calls] == [0, 50, 50]
    assert 3 in sleeps.calls


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts() -> None:
    errors = [UpstreamUnavailableError("eBay API failed with status: 503", status=503) for _ in range(5)]
    browse = _FakeBrowse(10, failures={0: errors})

    outcome = await _runner(browse, _FakeSink(), _FakeStore(), page_max_attempts=2).run(_message(10))

    assert len(browse.calls) == 2
    assert outcome.status is ImportJobStatus.FAILED


@pytest.mark.asyncio
async def test_auth_failure_on_page_is_recorded() -> None:
    browse = _FakeBrowse(60, failures={0: [UpstreamAuthError("eBay rejected a freshly issued token", status=401)]})

    outcome = await _runner(browse, _FakeSink(), _FakeStore()).run(_message(60))

    assert outcome.status is ImportJobStatus.PARTIALLY_FAILED
    assert outcome.progress.failures[0].kind == "upstream_auth"


@pytest.mark.asyncio
async def test_rejected_items_are_recorded_and_import_continues() -> None:
    sink = _FakeSink(reject_skus={"item-3"})
    metrics: dict[str, int] = {}

    outcome = await _runner(_FakeBrowse(10), sink, _FakeStore(), metrics=metrics).run(_message(10))

    assert outcome.status is ImportJobStatus.PARTIALLY_FAILED
    assert outcome.progress.items_imported == 9
    assert outcome.progress.items_failed == 1
    assert outcome.progress.failures[0].sku == "item-3"
    assert metrics["items_failed"] == 1


@pytest.mark.asyncio
async def test_missing_credentials_fail_job() -> None:
    browse = _FakeBrowse(60, failures={0: [CredentialError("eBay API credentials are not configured")]})
    store = _FakeStore()

    outcome = await _runner(browse, _FakeSink(), store).run(_message(60))

    assert outcome.status is ImportJobStatus.FAILED
    assert "credentials" in outcome.error_message
    assert len(browse.calls) == 1
    assert store.finished[0][0] is ImportJobStatus.FAILED


@pytest.mark.asyncio
async def test_cancel_signal_stops_between_pages() -> None:
    browse = _FakeBrowse(150)
    checks = iter([False, True])

    async def _cancelled() -> bool:
        return next(checks)

    outcome = await _runner(browse, _FakeSink(), _FakeStore()).run(_message(150), is_cancelled=_cancelled)

    assert outcome.status is ImportJobStatus.CANCELLED
    assert len(browse.calls) == 1
    assert outcome.progress.pages_processed == 1


@pytest.mark.asyncio
async def test_deadline_marks_remaining_pages() -> None:
    ticks = iter([0.0, 0.0, 10.0, 10.0])
    browse = _FakeBrowse(150)

    outcome = await _runner(
        browse,
        _FakeSink(),
        _FakeStore(),
        max_runtime_seconds=5,
        monotonic=lambda: next(ticks),
    ).run(_message(150))

    assert len(browse.calls) == 1
    assert outcome.status is ImportJobStatus.PARTIALLY_FAILED
    assert [failure.kind for failure in outcome.progress.failures] == ["deadline_exceeded", "deadline_exceeded"]
    assert [failure.page for failure in outcome.progress.failures] == [2, 3]


@pytest.mark.asyncio
async def test_lost_lease_stops_without_finishing() -> None:
    store = _FakeStore()
    browse = _FakeBrowse(120)

    async def _heartbeat() -> bool:
        return False

    with pytest.raises(LeaseLostError):
        await _runner(browse, _FakeSink(), store).run(_message(120), heartbeat=_heartbeat)

    assert browse.calls == []
    assert store.finished == []
    assert store.progress_saves == []


@pytest.mark.asyncio
async def test_lease_lost_mid_page_does_not_write_progress() -> None:
    store, sink = _FakeStore(), _FakeSink()
    beats = iter([True] * 11 + [False])

    async def _heartbeat() -> bool:
        return next(beats)

    with pytest.raises(LeaseLostError):
        await _runner(_FakeBrowse(120), sink, store, heartbeat_interval_seconds=0).run(
            _message(120), heartbeat=_heartbeat
        )

    assert len(sink.created) == 10
    assert store.progress_saves == []
    assert store.finished == []


@pytest.mark.asyncio
async def test_lease_is_renewed_during_a_slow_page() -> None:
    clock = {"now": 0.0}
    beats: list[float] = []

    class _SlowSink(_FakeSink):
        async def create(self, shop_domain: str, product: dict) -> dict:
            clock["now"] += 20
            return await super().create(shop_domain, product)

    async def _heartbeat() -> bool:
        beats.append(clock["now"])
        return True

    store = _FakeStore()
    await _runner(
        _FakeBrowse(10),
        _SlowSink(),
        store,
        heartbeat_interval_seconds=100,
        monotonic=lambda: clock["now"],
    ).run(_message(10), heartbeat=_heartbeat)

    assert beats == [0.0, 100.0, 200.0]
    assert all(later - earlier <= 100 for earlier, later in zip(beats, beats[1:]))
    assert store.progress_saves == [1]


class _RawResponse(requests.Response):
    def __init__(self, status_code: int, content: bytes) -> None:
        super().__init__()
        self.status_code = status_code
        self._content = content


def _listing_transport(total: int, garbled_offset: int):  # noqa: ANN202
    def _get(url: str, params: dict, **kwargs) -> requests.Response:  # noqa: ANN003
        offset, limit = params["offset"], params["limit"]
        if offset == garbled_offset:
            return _RawResponse(200, b"<html>gateway hiccup</html>")
        count = max(0, min(limit, total - offset))
        body = {"total": total, "itemSummaries": _listings(offset, count)}
        return _RawResponse(200, json.dumps(body).encode())

    return _get


@pytest.mark.asyncio
async def test_unreadable_ebay_page_is_recorded_and_import_continues() -> None:
    token_cache = EbayTokenCache(
        client_id="client",
        client_secret="secret",
        transport=lambda url, **kwargs: _RawResponse(200, b'{"access_token": "t", "expires_in": 7200}'),
    )
    browse = EbayBrowseClient(token_cache, transport=_listing_transport(120, garbled_offset=50))
    sink = _FakeSink()

    outcome = await _runner(browse, sink, _FakeStore(), page_max_attempts=1).run(_message(120))

    assert outcome.status is ImportJobStatus.PARTIALLY_FAILED
    assert len(sink.created) == 70
    failure = outcome.progress.failures[0]
    assert (failure.kind, failure.page, failure.offset) == ("upstream_unavailable", 2, 50)


@pytest.mark.asyncio
async def test_resume_skips_processed_pages() -> None:
    browse = _FakeBrowse(120)
    resume = JobProgress(pages_total=3, pages_processed=2, items_imported=100)

    outcome = await _runner(browse, _FakeSink(), _FakeStore()).run(_message(120), resume=resume)

    assert [offset for _, _, offset in browse.calls] == [100]
    assert outcome.progress.items_imported == 120
    assert outcome.status is ImportJobStatus.COMPLETED


def test_progress_from_record_restores_failures() -> None:
    class _Job:
        pages_total = 3
        pages_processed = 2
        pages_failed = 1
        items_imported = 50
        items_failed = 0
        failures = [{"scope": "page", "kind": "upstream_unavailable", "reason": "503", "page": 2, "offset": 50}]

    progress = JobProgress.from_record(_Job())

    assert progress.pages_processed == 2
    assert progress.failures[0].offset == 50
    assert progress.resolve_status() is ImportJobStatus.PARTIALLY_FAILED
