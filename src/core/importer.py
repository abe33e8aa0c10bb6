from __future__ import annotations

import logging
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from src.core.backoff import AdaptiveBackoff
from src.core.clients.ebay import EbayBrowseClient, ListingPage
from src.core.clients.storefront import ProductSink
from src.core.config import settings
from src.core.errors import (
    ConfigurationError,
    DownstreamForwardError,
    UpstreamAuthError,
    UpstreamUnavailableError,
)
from src.core.jobs import FailureRecord, ImportJobMessage, JobProgress
from src.core.repositories.import_jobs import ImportJobStore
from src.core.translator import translate_listing
from src.models.import_job import ImportJobStatus

logger = logging.getLogger(__name__)

Signal = Callable[[], Awaitable[bool]]


class LeaseLostError(RuntimeError):
    """Another worker took over the job; stop without touching its state."""


@dataclass(slots=True)
class ImportOutcome:
    job_id: str
    status: ImportJobStatus
    progress: JobProgress
    error_message: str | None = None


class _LeaseKeeper:
    """Renews the job lease at most once per ``interval`` while a page runs."""

    def __init__(
        self,
        job_id: str,
        signal: Signal | None,
        interval: float,
        monotonic: Callable[[], float],
    ) -> None:
        self.job_id = job_id
        self._signal = signal
        self._interval = interval
        self._monotonic = monotonic
        self._last_beat: float | None = None

    async def beat(self, *, force: bool = False) -> None:
        if self._signal is None:
            return
        now = self._monotonic()
        if not force and self._last_beat is not None and now - self._last_beat < self._interval:
            return
        if not await self._signal():
            raise LeaseLostError(f"Lease lost for import job {self.job_id}")
        self._last_beat = now


def _default_backoff() -> AdaptiveBackoff:
    return AdaptiveBackoff(
        base_delay=settings.page_delay_seconds(),
        max_delay=settings.import_max_backoff_seconds,
    )


class ImportJobRunner:
    """Runs one bulk import: sequential pages, one product forward at a time.

    Page failures are recorded and the job moves on; only configuration
    problems (credentials, proxy) abort the whole job.
    """

    def __init__(
        self,
        browse_client: EbayBrowseClient,
        sink: ProductSink,
        job_store: ImportJobStore,
        *,
        page_size: int | None = None,
        page_max_attempts: int | None = None,
        max_runtime_seconds: float | None = None,
        backoff_factory: Callable[[], AdaptiveBackoff] = _default_backoff,
        failure_limit: int | None = None,
        heartbeat_interval_seconds: float | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        metrics: dict[str, int] | None = None,
    ) -> None:
        self.browse_client = browse_client
        self.sink = sink
        self.job_store = job_store
        self.page_size = page_size or settings.import_page_size
        self.page_max_attempts = max(1, page_max_attempts or settings.import_page_max_attempts)
        self.max_runtime_seconds = (
            settings.import_job_max_seconds if max_runtime_seconds is None else max_runtime_seconds
        )
        self.failure_limit = failure_limit or settings.import_failure_log_limit
        self.heartbeat_interval_seconds = (
            settings.import_lease_ttl_seconds / 3
            if heartbeat_interval_seconds is None
            else heartbeat_interval_seconds
        )
        self.metrics = metrics if metrics is not None else {}
        self._backoff_factory = backoff_factory
        self._monotonic = monotonic

    def _bump(self, key: str, amount: int = 1) -> None:
        self.metrics[key] = self.metrics.get(key, 0) + amount

    async def run(
        self,
        message: ImportJobMessage,
        *,
        heartbeat: Signal | None = None,
        is_cancelled: Signal | None = None,
        resume: JobProgress | None = None,
    ) -> ImportOutcome:
        pages_total = math.ceil(message.total / self.page_size) if message.total > 0 else 0
        progress = resume or JobProgress(pages_total=pages_total, failure_limit=self.failure_limit)
        progress.pages_total = pages_total
        first_page = progress.pages_processed

        await self.job_store.mark_running(message.shop_domain, message.job_id)
        logger.info(
            "Import job=%s shop=%s seller=%s total=%s pages=%s starting at page=%s",
            message.job_id,
            message.shop_domain,
            message.seller_username,
            message.total,
            pages_total,
            first_page + 1,
        )

        backoff = self._backoff_factory()
        lease = _LeaseKeeper(message.job_id, heartbeat, self.heartbeat_interval_seconds, self._monotonic)
        started = self._monotonic()
        try:
            for page_index in range(first_page, pages_total):
                if is_cancelled is not None and await is_cancelled():
                    logger.info("Import job=%s cancelled before page=%s", message.job_id, page_index + 1)
                    return await self._finish(message, ImportJobStatus.CANCELLED, progress)

                if self._monotonic() - started > self.max_runtime_seconds:
                    self._record_deadline(message, progress, page_index, pages_total)
                    break

                if page_index > first_page:
                    await backoff.pause()

                await self._process_page(message, page_index, progress, backoff, lease)
                # Progress is only written while this worker still owns the job.
                await lease.beat(force=True)
                progress.pages_processed = page_index + 1
                await self.job_store.save_progress(message.shop_domain, message.job_id, progress)
        except ConfigurationError as exc:
            logger.error("Import job=%s aborted: %s", message.job_id, exc)
            return await self._finish(message, ImportJobStatus.FAILED, progress, error_message=str(exc))

        status = progress.resolve_status()
        error_message = None
        if status is ImportJobStatus.FAILED:
            error_message = "No listings could be imported"
        return await self._finish(message, status, progress, error_message=error_message)

    async def _finish(
        self,
        message: ImportJobMessage,
        status: ImportJobStatus,
        progress: JobProgress,
        error_message: str | None = None,
    ) -> ImportOutcome:
        await self.job_store.finish(
            message.shop_domain,
            message.job_id,
            status,
            progress,
            error_message=error_message,
        )
        logger.info(
            "Import job=%s finished status=%s imported=%s failed_items=%s failed_pages=%s",
            message.job_id,
            status.value,
            progress.items_imported,
            progress.items_failed,
            progress.pages_failed,
        )
        return ImportOutcome(
            job_id=message.job_id,
            status=status,
            progress=progress,
            error_message=error_message,
        )

    def _record_deadline(
        self,
        message: ImportJobMessage,
        progress: JobProgress,
        page_index: int,
        pages_total: int,
    ) -> None:
        logger.warning(
            "Import job=%s exceeded %ss budget, skipping pages %s-%s",
            message.job_id,
            self.max_runtime_seconds,
            page_index + 1,
            pages_total,
        )
        for skipped in range(page_index, pages_total):
            progress.record_page_failure(
                FailureRecord(
                    scope="page",
                    kind="deadline_exceeded",
                    reason="Job wall-clock budget exhausted",
                    page=skipped + 1,
                    offset=skipped * self.page_size,
                )
            )
            self._bump("pages_failed")

    async def _process_page(
        self,
        message: ImportJobMessage,
        page_index: int,
        progress: JobProgress,
        backoff: AdaptiveBackoff,
        lease: _LeaseKeeper,
    ) -> None:
        offset = page_index * self.page_size
        try:
            listing_page = await self._fetch_page(message, offset, backoff, lease)
        except (UpstreamUnavailableError, UpstreamAuthError) as exc:
            kind = "upstream_auth" if isinstance(exc, UpstreamAuthError) else "upstream_unavailable"
            progress.record_page_failure(
                FailureRecord(scope="page", kind=kind, reason=str(exc), page=page_index + 1, offset=offset)
            )
            self._bump("pages_failed")
            logger.warning(
                "Import job=%s page=%s offset=%s failed: %s",
                message.job_id,
                page_index + 1,
                offset,
                exc,
            )
            return

        for listing in listing_page.items:
            product = translate_listing(listing)
            sku = product["variants"][0]["sku"]
            await lease.beat()
            try:
                await self.sink.create(message.shop_domain, product)
            except DownstreamForwardError as exc:
                if exc.throttled:
                    backoff.on_throttle(exc.retry_after)
                progress.record_item_failure(
                    FailureRecord(
                        scope="item",
                        kind="downstream_rejected",
                        reason=str(exc),
                        page=page_index + 1,
                        offset=offset,
                        sku=sku or None,
                    )
                )
                self._bump("items_failed")
                logger.warning("Import job=%s item sku=%s not created: %s", message.job_id, sku, exc)
                continue
            progress.items_imported += 1
            self._bump("items_imported")

    async def _fetch_page(
        self,
        message: ImportJobMessage,
        offset: int,
        backoff: AdaptiveBackoff,
        lease: _LeaseKeeper,
    ) -> ListingPage:
        attempt = 1
        while True:
            await lease.beat()
            try:
                listing_page = await self.browse_client.search_seller_listings(
                    message.seller_username,
                    limit=self.page_size,
                    offset=offset,
                )
            except UpstreamUnavailableError as exc:
                if exc.throttled:
                    backoff.on_throttle(exc.retry_after)
                if not exc.retryable or attempt >= self.page_max_attempts:
                    raise
                logger.info(
                    "Retrying eBay page offset=%s for job=%s attempt=%s/%s: %s",
                    offset,
                    message.job_id,
                    attempt + 1,
                    self.page_max_attempts,
                    exc,
                )
                attempt += 1
                await backoff.pause()
                continue
            backoff.on_success()
            return listing_page
