from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from src.core.billing import QuotaLedger, QuotaReservation
from src.core.clients.ebay import EbayBrowseClient
from src.core.config import settings
from src.core.errors import QueuePublishError, QuotaExceededError
from src.core.jobs import ImportJobMessage
from src.core.queue import ImportQueue
from src.core.repositories.import_jobs import ImportJobStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class ImportTicket:
    total_items: int
    job_id: str | None = None
    eta: datetime | None = None

    @property
    def queued(self) -> bool:
        return self.job_id is not None


class JobIntake:
    def __init__(
        self,
        browse_client: EbayBrowseClient,
        queue: ImportQueue,
        job_store: ImportJobStore,
        ledger: QuotaLedger | None = None,
        page_size: int | None = None,
        seconds_per_page: float | None = None,
        cost_per_item: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.browse_client = browse_client
        self.queue = queue
        self.job_store = job_store
        self.ledger = ledger
        self.page_size = page_size or settings.import_page_size
        self.seconds_per_page = (
            settings.import_seconds_per_page if seconds_per_page is None else seconds_per_page
        )
        self.cost_per_item = settings.quota_cost_per_imported_item if cost_per_item is None else cost_per_item
        self._clock = clock

    def estimate_eta(self, total_items: int) -> datetime:
        pages = math.ceil(total_items / self.page_size)
        seconds = pages * self.seconds_per_page
        return self._clock() + timedelta(seconds=seconds)

    async def begin_import(
        self,
        shop_domain: str,
        seller_username: str,
        import_options: dict[str, object] | None = None,
    ) -> ImportTicket:
        probe = await self.browse_client.search_seller_listings(seller_username, limit=1, offset=0)
        total = probe.total
        if total <= 0:
            logger.info("No listings found for seller=%s shop=%s; nothing queued", seller_username, shop_domain)
            return ImportTicket(total_items=0)

        item_reservation = await self._reserve_item_quota(shop_domain, total)

        message = ImportJobMessage(
            job_id=str(uuid4()),
            shop_domain=shop_domain,
            seller_username=seller_username,
            total=total,
            import_options=dict(import_options or {}),
        )
        try:
            await self.job_store.create_queued(message, pages_total=math.ceil(total / self.page_size))
        except Exception:
            await self._release(item_reservation)
            raise

        try:
            await self.queue.publish(message)
        except QueuePublishError as exc:
            logger.error("Queue publish failed for job=%s shop=%s: %s", message.job_id, shop_domain, exc)
            await self.job_store.mark_failed(shop_domain, message.job_id, str(exc))
            await self._release(item_reservation)
            raise

        eta = self.estimate_eta(total)
        logger.info("Queued import job=%s shop=%s total=%s", message.job_id, shop_domain, total)
        return ImportTicket(total_items=total, job_id=message.job_id, eta=eta)

    async def _reserve_item_quota(self, shop_domain: str, total: int) -> QuotaReservation | None:
        if self.ledger is None or self.cost_per_item <= 0:
            return None
        decision = await self.ledger.check_and_reserve(shop_domain, total * self.cost_per_item)
        if not decision.allowed:
            raise QuotaExceededError(decision.used, decision.limit)
        return decision.reservation

    async def _release(self, reservation: QuotaReservation | None) -> None:
        if reservation is not None and self.ledger is not None:
            await self.ledger.release(reservation)
