from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from src.agents.health import AgentHealth
from src.core.clients.ebay import EbayBrowseClient, EbayTokenCache
from src.core.clients.storefront import ProxyProductSink
from src.core.config import settings
from src.core.importer import ImportJobRunner, LeaseLostError
from src.core.jobs import JobProgress
from src.core.queue import ImportQueue, QueuedJob
from src.core.repositories.import_jobs import ImportJobStore
from src.models.import_job import ImportJobStatus

logger = logging.getLogger(__name__)


class ImportAgent:
    def __init__(
        self,
        queue: ImportQueue | None = None,
        runner: ImportJobRunner | None = None,
        job_store: ImportJobStore | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.health = AgentHealth(name="import-agent")
        self.queue = queue or ImportQueue()
        self.job_store = job_store or ImportJobStore()
        self.runner = runner or ImportJobRunner(
            browse_client=EbayBrowseClient(EbayTokenCache()),
            sink=ProxyProductSink(),
            job_store=self.job_store,
        )
        self.runner.metrics = self.health.metrics
        self.concurrency = concurrency or settings.import_worker_concurrency
        self._stop_event = asyncio.Event()
        self._slots: list[asyncio.Task[None]] = []

    async def stop(self) -> None:
        self._stop_event.set()
        for task in self._slots:
            task.cancel()
        for task in self._slots:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.queue.close()

    async def run(self) -> None:
        await self.queue.ensure_group()
        self.health.ready = True
        self._slots = [
            asyncio.create_task(self._run_slot(f"{settings.import_consumer_name}-{slot}"))
            for slot in range(self.concurrency)
        ]
        await asyncio.gather(*self._slots, return_exceptions=True)

    async def _run_slot(self, consumer: str) -> None:
        retry_delay = 1
        while not self._stop_event.is_set():
            self.health.mark_run()
            try:
                delivery = await self.queue.reclaim_stale(consumer)
                if delivery is None:
                    delivery = await self.queue.read(consumer)
                if delivery is None:
                    continue

                await self.handle_delivery(delivery)
                self.health.mark_success()
                retry_delay = 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pragma: no cover - operational path
                self.health.mark_error(exc)
                logger.exception("Import worker slot=%s loop failed", consumer)
                await asyncio.sleep(retry_delay)
                retry_delay = min(retry_delay * 2, settings.import_max_retry_delay_seconds)

    async def handle_delivery(self, delivery: QueuedJob) -> None:
        message = delivery.message
        if message is None:
            # Unparseable entries can never succeed; drop them instead of redelivering forever.
            self.health.record_rejected_message()
            await self.queue.ack(delivery.message_id)
            return

        if not await self.queue.acquire_lease(message.job_id, delivery.consumer):
            logger.info("Import job=%s is leased by another worker, skipping", message.job_id)
            return

        try:
            job = await self.job_store.get(message.shop_domain, message.job_id)
            if job is None:
                logger.warning("Import job=%s has no record for shop=%s, dropping", message.job_id, message.shop_domain)
                await self.queue.ack(delivery.message_id)
                return

            if ImportJobStatus(job.status).is_terminal:
                logger.info("Import job=%s already %s, acknowledging redelivery", message.job_id, job.status)
                await self.queue.ack(delivery.message_id)
                return

            if job.cancel_requested_at is not None:
                logger.info("Import job=%s was cancelled while pending, finishing it", message.job_id)
                progress = JobProgress.from_record(job, failure_limit=self.runner.failure_limit)
                await self.job_store.finish(
                    message.shop_domain,
                    message.job_id,
                    ImportJobStatus.CANCELLED,
                    progress,
                )
                self.health.record_job_outcome(ImportJobStatus.CANCELLED.value)
                await self.queue.ack(delivery.message_id)
                return

            if (job.delivery_attempts or 0) >= settings.import_max_deliveries:
                logger.error(
                    "Import job=%s exceeded %s deliveries, marking failed",
                    message.job_id,
                    settings.import_max_deliveries,
                )
                await self.job_store.mark_failed(
                    message.shop_domain,
                    message.job_id,
                    f"Gave up after {job.delivery_attempts} delivery attempts",
                )
                self.health.record_job_outcome(ImportJobStatus.FAILED.value)
                await self.queue.ack(delivery.message_id)
                return

            resume = JobProgress.from_record(job, failure_limit=self.runner.failure_limit)

            async def heartbeat() -> bool:
                renewed = await self.queue.renew_lease(message.job_id, delivery.consumer)
                return renewed and await self.queue.heartbeat(delivery)

            async def is_cancelled() -> bool:
                return await self.queue.is_cancel_requested(message.job_id)

            try:
                outcome = await self.runner.run(
                    message,
                    heartbeat=heartbeat,
                    is_cancelled=is_cancelled,
                    resume=resume,
                )
            except LeaseLostError:
                logger.warning("Import job=%s lost its lease, leaving it to the new owner", message.job_id)
                return
            except Exception:
                # Left pending so a reclaim retries it; delivery_attempts bounds the retries.
                logger.exception("Import job=%s crashed, leaving message=%s pending", message.job_id, delivery.message_id)
                self.health.record_job_crash()
                return

            self.health.record_job_outcome(outcome.status.value)
            await self.queue.ack(delivery.message_id)
        finally:
            await self.queue.release_lease(message.job_id, delivery.consumer)


import_agent = ImportAgent()
app = FastAPI(title="Ebayify Import Agent")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=settings.log_level)
    app.state.task = asyncio.create_task(import_agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await import_agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return import_agent.health.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": import_agent.health.ready}
