from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.db import AsyncSessionLocal, shop_session
from src.core.jobs import ImportJobMessage, JobProgress
from src.core.repositories.base import ShopScopedRepository
from src.models.import_job import ImportJob, ImportJobStatus


class ImportJobRepository(ShopScopedRepository[ImportJob]):
    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session=session, model=ImportJob)

    async def get_by_job_id(self, job_id: str) -> ImportJob | None:
        try:
            entity_id = UUID(job_id)
        except ValueError:
            return None
        return await self.get(entity_id)


def _apply_progress(job: ImportJob, progress: JobProgress) -> None:
    job.pages_total = progress.pages_total
    job.pages_processed = progress.pages_processed
    job.pages_failed = progress.pages_failed
    job.items_imported = progress.items_imported
    job.items_failed = progress.items_failed
    job.failures = progress.failure_payload()


class ImportJobStore:
    """Persists job state transitions for workers and intake.

    Every call opens its own short session under the job's shop context, so a
    long-running import never holds a database connection between pages.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    @contextlib.asynccontextmanager
    async def _repository(self, shop_domain: str) -> AsyncIterator[ImportJobRepository]:
        async with shop_session(shop_domain, self._session_factory) as session:
            yield ImportJobRepository(session)

    async def create_queued(self, message: ImportJobMessage, pages_total: int) -> ImportJob:
        async with self._repository(message.shop_domain) as repository:
            return await repository.create(
                id=UUID(message.job_id),
                ebay_seller_username=message.seller_username,
                total_items=message.total,
                import_options=message.import_options,
                status=ImportJobStatus.QUEUED.value,
                pages_total=pages_total,
                failures=[],
            )

    async def get(self, shop_domain: str, job_id: str) -> ImportJob | None:
        async with self._repository(shop_domain) as repository:
            return await repository.get_by_job_id(job_id)

    async def mark_running(self, shop_domain: str, job_id: str) -> ImportJob | None:
        async with self._repository(shop_domain) as repository:
            job = await repository.get_by_job_id(job_id)
            if job is None:
                return None
            job.status = ImportJobStatus.RUNNING.value
            job.delivery_attempts = (job.delivery_attempts or 0) + 1
            if job.started_at is None:
                job.started_at = datetime.now(timezone.utc)
            await repository.session.flush()
            return job

    async def save_progress(self, shop_domain: str, job_id: str, progress: JobProgress) -> None:
        async with self._repository(shop_domain) as repository:
            job = await repository.get_by_job_id(job_id)
            if job is None:
                return
            _apply_progress(job, progress)

    async def finish(
        self,
        shop_domain: str,
        job_id: str,
        status: ImportJobStatus,
        progress: JobProgress,
        error_message: str | None = None,
    ) -> None:
        async with self._repository(shop_domain) as repository:
            job = await repository.get_by_job_id(job_id)
            if job is None:
                return
            _apply_progress(job, progress)
            job.status = status.value
            job.error_message = error_message
            job.finished_at = datetime.now(timezone.utc)

    async def mark_failed(self, shop_domain: str, job_id: str, error_message: str) -> None:
        async with self._repository(shop_domain) as repository:
            job = await repository.get_by_job_id(job_id)
            if job is None:
                return
            job.status = ImportJobStatus.FAILED.value
            job.error_message = error_message
            job.finished_at = datetime.now(timezone.utc)

    async def list_recent(self, shop_domain: str, limit: int = 20) -> list[ImportJob]:
        async with self._repository(shop_domain) as repository:
            return await repository.list(limit=limit)

    async def request_cancel(self, shop_domain: str, job_id: str) -> ImportJob | None:
        """Record a cancel request; a job nobody has started is cancelled outright."""
        async with self._repository(shop_domain) as repository:
            job = await repository.get_by_job_id(job_id)
            if job is None or ImportJobStatus(job.status).is_terminal:
                return job
            now = datetime.now(timezone.utc)
            job.cancel_requested_at = now
            if job.status == ImportJobStatus.QUEUED.value:
                job.status = ImportJobStatus.CANCELLED.value
                job.finished_at = now
            await repository.session.flush()
            return job
